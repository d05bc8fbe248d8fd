# travel_journal/remote_api/schemas.py
# Row and session shapes exchanged with the Supabase-compatible backend.
import time
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Auth ---
class AuthSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[float] = None
    user_id: Optional[str] = None

    @classmethod
    def from_auth_response(cls, payload: Dict[str, Any]) -> "AuthSession":
        """Builds a session from a GoTrue token/signup response."""
        user = payload.get("user") or {}
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in") is not None:
            expires_at = time.time() + float(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type", "bearer"),
            expires_in=payload.get("expires_in"),
            expires_at=expires_at,
            user_id=user.get("id"),
        )

    def is_expired(self, leeway_seconds: float = 30.0) -> bool:
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - leeway_seconds


# --- Table rows ---
class RemoteRow(BaseModel):
    """Fields every synced table shares. Unknown columns from the backend are ignored."""
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: str
    updated_at: str
    deleted: bool = False

    @field_validator("deleted", mode="before")
    @classmethod
    def _null_deleted_is_false(cls, value):
        return False if value is None else value


class TripRow(RemoteRow):
    title: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class EntryRow(RemoteRow):
    trip_id: str
    title: str = ""
    content: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("title", mode="before")
    @classmethod
    def _null_title_is_empty(cls, value):
        return "" if value is None else value
