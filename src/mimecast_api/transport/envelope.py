"""
Request/response envelope helpers.

Requests travel as ``{"data": [payload]}``; replies as
``{"success", "data", "fail", "meta"}``.
"""

import copy
from typing import Any, Optional

from pydantic import ValidationError

from mimecast_api.errors import InvalidResponseError
from mimecast_api.models.envelope import ResponseEnvelope


def wrap_body(payload: Any) -> dict[str, Any]:
    """Wrap a single request object in the provider's one-element ``data`` array."""
    return {"data": [payload]}


def ensure_wrapped(body: Optional[Any]) -> dict[str, Any]:
    """Return a deep copy of ``body`` in wire shape, never the caller's object."""
    if body is None:
        return wrap_body({})
    if isinstance(body, dict) and isinstance(body.get("data"), list):
        wrapped = copy.deepcopy(body)
        if not wrapped["data"]:
            wrapped["data"].append({})
        return wrapped
    return wrap_body(copy.deepcopy(body))


def parse_envelope(raw: Any) -> ResponseEnvelope:
    if not isinstance(raw, dict):
        return ResponseEnvelope(data=raw)
    try:
        return ResponseEnvelope.model_validate(raw)
    except ValidationError as e:
        raise InvalidResponseError(f"Malformed response envelope: {e}") from e
