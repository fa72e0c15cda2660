"""
Response envelope: the ``{success, data, fail, meta}`` wrapper around every reply.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    next: Optional[str] = None
    previous: Optional[str] = None
    page_size: Optional[int] = Field(default=None, alias="pageSize")
    total_count: Optional[int] = Field(default=None, alias="totalCount")

    model_config = {"populate_by_name": True, "extra": "allow"}


class ResponseMeta(BaseModel):
    status: Optional[int] = None
    pagination: Optional[PaginationMeta] = None

    model_config = {"extra": "allow"}


class ResponseEnvelope(BaseModel):
    success: Optional[bool] = None
    data: Any = None
    fail: Optional[list[Any]] = None
    meta: Optional[ResponseMeta] = None

    model_config = {"extra": "allow"}

    @property
    def has_data(self) -> bool:
        return "data" in self.model_fields_set

    @property
    def failed(self) -> bool:
        """``success: false``, or no success flag and a non-empty ``fail`` list."""
        if self.success is not None:
            return not self.success
        return bool(self.fail)

    @property
    def next_page_token(self) -> Optional[str]:
        if self.meta and self.meta.pagination and self.meta.pagination.next:
            return self.meta.pagination.next
        return None
