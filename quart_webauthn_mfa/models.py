"""User and credential models used by the datastores."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field


class UserMixin:
    """Accessors shared by in-memory and SQLAlchemy user models."""

    def get_id(self):
        return getattr(self, "username", None)

    @property
    def device(self):
        # One device per user; later entries are never consulted.
        credentials = getattr(self, "credentials", None) or []
        return credentials[0] if credentials else None

    @property
    def has_device(self) -> bool:
        return self.device is not None


@dataclass
class Credential:
    credential_id: bytes
    public_key: bytes
    sign_count: int = 0
    device_type: str = "single_device"
    backed_up: bool = False
    created_at: datetime.datetime | None = None
    last_used_at: datetime.datetime | None = None


@dataclass
class User(UserMixin):
    id: int
    username: str
    password: str
    webauthn_user_handle: str | None = None
    credentials: list[Credential] = field(default_factory=list)
