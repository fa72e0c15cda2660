"""
Mimecast API error types.

Every failure the client raises derives from MimecastError and carries a
stable ``code`` string alongside the human readable message.
"""

from datetime import datetime
from typing import Any, Optional


class MimecastError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class UnknownRegionError(MimecastError):
    def __init__(self, region: str):
        super().__init__("unknown_region", f"Unknown Mimecast region: {region!r}", {"region": region})
        self.region = region


class AuthenticationError(MimecastError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("authentication_error", message)
        self.status_code = status_code


class NotConnectedError(MimecastError):
    def __init__(self, message: str = "Not connected. Call connect() first."):
        super().__init__("not_connected", message)


class TokenExpiredError(MimecastError):
    def __init__(self, expired_at: datetime):
        super().__init__(
            "token_expired",
            f"Access token expired at {expired_at.isoformat()}. Reconnect to continue.",
        )
        self.expired_at = expired_at


class TransportError(MimecastError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__("transport_error", message)
        self.cause = cause


class ApiHttpError(MimecastError):
    def __init__(self, status_code: int, body: str):
        super().__init__("http_error", f"HTTP {status_code}: {body[:200]}", {"status_code": status_code})
        self.status_code = status_code
        self.body = body


class ApiLogicalError(MimecastError):
    """The provider answered 2xx but flagged the call as failed."""

    def __init__(self, fail: list[Any]):
        super().__init__("api_error", f"Request failed: {_describe_fail(fail)}", {"fail": fail})
        self.fail = fail


class InvalidResponseError(MimecastError):
    def __init__(self, message: str, body: str = ""):
        super().__init__("invalid_response", message)
        self.body = body


class InvalidFilterError(MimecastError):
    def __init__(self, message: str):
        super().__init__("invalid_filter", message)


class PageLimitError(MimecastError):
    def __init__(self, max_pages: int):
        super().__init__("page_limit", f"Stopped after {max_pages} pages without reaching the last one")
        self.max_pages = max_pages


class OperationCancelledError(MimecastError):
    def __init__(self, message: str = "Operation cancelled"):
        super().__init__("cancelled", message)


class PaginatedRequestError(MimecastError):
    def __init__(self, path: str, cause: BaseException, partial_count: int = 0):
        super().__init__(
            "paginated_request_error",
            f"Paginated request to {path} failed after {partial_count} records: {cause}",
            {"path": path, "partial_count": partial_count},
        )
        self.path = path
        self.cause = cause
        self.partial_count = partial_count


def _describe_fail(fail: list[Any]) -> str:
    messages = []
    for item in fail:
        if isinstance(item, dict):
            errors = item.get("errors") or []
            for err in errors:
                if isinstance(err, dict) and err.get("message"):
                    messages.append(str(err["message"]))
            if item.get("message"):
                messages.append(str(item["message"]))
        elif item:
            messages.append(str(item))
    return "; ".join(messages) or "no detail from provider"
