"""
mimecast-api: Mimecast API 2.0 client for Python.

OAuth2 client-credentials auth, cursor pagination, archive search and
message trace over the Mimecast REST API.
"""

from mimecast_api.client import Mimecast, AsyncMimecast
from mimecast_api.auth import REGIONS, TokenManager, resolve_base_uri
from mimecast_api.errors import (
    MimecastError,
    UnknownRegionError,
    AuthenticationError,
    NotConnectedError,
    TokenExpiredError,
    TransportError,
    ApiHttpError,
    ApiLogicalError,
    InvalidResponseError,
    InvalidFilterError,
    PaginatedRequestError,
    PageLimitError,
    OperationCancelledError,
)
from mimecast_api.models.message import MessageRecord
from mimecast_api.models.search import DateRange, SearchFilters, TraceFilters
from mimecast_api.models.session import Session
from mimecast_api.transport.envelope import wrap_body

__version__ = "0.1.0"
__all__ = [
    "Mimecast",
    "AsyncMimecast",
    "REGIONS",
    "TokenManager",
    "resolve_base_uri",
    "MimecastError",
    "UnknownRegionError",
    "AuthenticationError",
    "NotConnectedError",
    "TokenExpiredError",
    "TransportError",
    "ApiHttpError",
    "ApiLogicalError",
    "InvalidResponseError",
    "InvalidFilterError",
    "PaginatedRequestError",
    "PageLimitError",
    "OperationCancelledError",
    "MessageRecord",
    "DateRange",
    "SearchFilters",
    "TraceFilters",
    "Session",
    "wrap_body",
]
