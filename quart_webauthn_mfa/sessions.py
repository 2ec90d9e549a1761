"""Explicit per-session authentication state and its server-side store."""

from __future__ import annotations

import enum
import secrets
import time
from collections import OrderedDict
from dataclasses import dataclass, field

REGISTRATION = "registration"
AUTHENTICATION = "authentication"


class AuthStage(str, enum.Enum):
    ANONYMOUS = "anonymous"
    FIRST_FACTOR_VERIFIED = "first_factor_verified"
    FULLY_AUTHENTICATED = "fully_authenticated"


@dataclass
class PendingChallenge:
    """A challenge issued for exactly one ceremony."""

    challenge: bytes
    ceremony: str
    username: str | None = None
    issued_at: int = field(default_factory=lambda: int(time.time()))

    def is_expired(self, max_age_seconds: int) -> bool:
        age = int(time.time()) - self.issued_at
        return age < 0 or age > max_age_seconds


@dataclass
class SessionState:
    stage: AuthStage = AuthStage.ANONYMOUS
    username: str | None = None
    pending: PendingChallenge | None = None

    @property
    def first_factor_verified(self) -> bool:
        return self.stage in (
            AuthStage.FIRST_FACTOR_VERIFIED,
            AuthStage.FULLY_AUTHENTICATED,
        )

    @property
    def fully_authenticated(self) -> bool:
        return self.stage is AuthStage.FULLY_AUTHENTICATED

    def issue_challenge(self, challenge: bytes, ceremony: str, username=None):
        # Overwrites whatever ceremony was pending.
        self.pending = PendingChallenge(
            challenge=challenge, ceremony=ceremony, username=username
        )
        return self.pending

    def consume_challenge(
        self, ceremony: str, max_age_seconds: int = 300
    ) -> PendingChallenge | None:
        """Pop the pending challenge.

        The challenge is cleared even when it turns out to belong to another
        ceremony or to be too old, so every issued challenge is good for a
        single completion attempt.
        """
        pending, self.pending = self.pending, None
        if pending is None or pending.ceremony != ceremony:
            return None
        if pending.is_expired(max_age_seconds):
            return None
        return pending

    def reset(self):
        self.stage = AuthStage.ANONYMOUS
        self.username = None
        self.pending = None


class InMemorySessionStore:
    """Session states keyed by an opaque token held in the client cookie.

    A state untouched for ``idle_timeout`` seconds is dropped the next time
    the store is read or written. Tokens are kept in last-touched order, so
    eviction stops at the first live entry.
    """

    def __init__(self, idle_timeout: int = 1800, clock=time.monotonic):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._states: dict[str, SessionState] = {}
        self._touched: OrderedDict[str, float] = OrderedDict()

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(32)

    def _evict_idle(self, now: float):
        cutoff = now - self.idle_timeout
        while self._touched:
            token, touched_at = next(iter(self._touched.items()))
            if touched_at > cutoff:
                break
            self._touched.popitem(last=False)
            self._states.pop(token, None)

    def _touch(self, token: str, now: float):
        self._touched[token] = now
        self._touched.move_to_end(token)

    def load(self, token: str | None) -> SessionState:
        now = self._clock()
        self._evict_idle(now)
        if token is None or token not in self._states:
            return SessionState()
        self._touch(token, now)
        return self._states[token]

    def save(self, token: str, state: SessionState):
        now = self._clock()
        self._evict_idle(now)
        self._states[token] = state
        self._touch(token, now)

    def delete(self, token: str | None):
        if token is not None:
            self._states.pop(token, None)
            self._touched.pop(token, None)

    def __contains__(self, token) -> bool:
        return token in self._states

    def __len__(self) -> int:
        return len(self._states)
