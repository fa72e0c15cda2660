"""
Session model: one authenticated connection to a Mimecast region.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, SecretStr, field_validator

from mimecast_api.models.search import as_utc

API_PREFIX = "/api/v2"


class Session(BaseModel):
    region: str
    base_uri: str
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    access_token: Optional[str] = None
    token_type: str = "Bearer"
    token_expiry: Optional[datetime] = None
    connected_at: Optional[datetime] = None

    @field_validator("token_expiry", "connected_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else as_utc(value)

    @property
    def api_base_uri(self) -> str:
        return f"{self.base_uri.rstrip('/')}{API_PREFIX}"

    @property
    def is_connected(self) -> bool:
        return bool(self.access_token)

    def config(self) -> dict[str, Any]:
        return {"base_uri": self.base_uri, "region": self.region, "token_expiry": self.token_expiry}
