"""API credential data model."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class ApiCredential(BaseModel):
    """A hashed API key granting programmatic access for one user.

    The raw key is shown once at creation and never stored.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    key_hash: str
    label: str
    expires_at: datetime
    last_used_at: datetime | None = None
    usage_count: int = 0
    active: bool = True
    created_at: datetime = Field(default_factory=_now)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or _now())

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``api_keys`` column order."""
        return (
            self.id,
            self.user_id,
            self.key_hash,
            self.label,
            self.expires_at.isoformat(),
            self.last_used_at.isoformat() if self.last_used_at else None,
            self.usage_count,
            int(self.active),
            self.created_at.isoformat(),
        )

    @classmethod
    def from_row(cls, row: tuple) -> ApiCredential:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            user_id=row[1],
            key_hash=row[2],
            label=row[3],
            expires_at=row[4],
            last_used_at=row[5],
            usage_count=row[6],
            active=bool(row[7]),
            created_at=row[8],
        )


def generate_key() -> str:
    """A new random raw API key."""
    return secrets.token_urlsafe(32)


def hash_key(raw_key: str) -> str:
    """SHA-256 hex digest used for storage and lookup."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()
