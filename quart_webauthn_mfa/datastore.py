"""Datastores holding users and their registered WebAuthn credential.

Every datastore exposes the same methods, either plain or ``async``; callers
go through :func:`maybe_await` so both kinds are interchangeable.
"""

from __future__ import annotations

import datetime
import inspect
from itertools import count

from sqlalchemy import select

from .models import Credential, User


async def maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class InMemoryUserDatastore:
    """Process-local datastore keyed by username. Lost on restart."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self._ids = count(1)

    def find_user(self, username):
        return self.users.get(username)

    def create_user(self, username, password, **kwargs):
        if username in self.users:
            raise ValueError(f"User {username!r} already exists")
        user = User(id=next(self._ids), username=username, password=password, **kwargs)
        self.users[username] = user
        return user

    def set_user_handle(self, user, user_handle):
        user.webauthn_user_handle = user_handle
        return user_handle

    def get_credential(self, user):
        return user.device

    def set_credential(self, user, **kwargs):
        kwargs.setdefault("created_at", datetime.datetime.now(datetime.timezone.utc))
        credential = Credential(**kwargs)
        # Whole-record replacement: the new device supersedes the old one.
        user.credentials = [credential]
        return credential

    def update_sign_count(self, user, credential, sign_count):
        credential.sign_count = int(sign_count)
        credential.last_used_at = datetime.datetime.now(datetime.timezone.utc)
        return credential

    def commit(self):
        return None


class SQLAlchemyUserDatastore:
    """Async datastore backed by SQLAlchemy AsyncSession."""

    def __init__(self, session_factory, user_model, credential_model):
        self.session_factory = session_factory
        self.user_model = user_model
        self.credential_model = credential_model

    @property
    def session(self):
        return self.session_factory()

    async def _first(self, model, **kwargs):
        stmt = select(model).filter_by(**kwargs)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_user(self, username):
        return await self._first(self.user_model, username=username)

    async def create_user(self, username, password, **kwargs):
        user = self.user_model(username=username, password=password, **kwargs)
        self.session.add(user)
        return user

    async def set_user_handle(self, user, user_handle):
        user.webauthn_user_handle = user_handle
        self.session.add(user)
        return user_handle

    async def get_credential(self, user):
        credentials = list(getattr(user, "credentials", None) or [])
        if not credentials and hasattr(self.credential_model, "user_id"):
            credential = await self._first(self.credential_model, user_id=user.id)
            return credential
        return credentials[0] if credentials else None

    async def set_credential(self, user, **kwargs):
        kwargs.setdefault("created_at", datetime.datetime.now(datetime.timezone.utc))
        previous = await self.get_credential(user)
        if previous is not None:
            await self.session.delete(previous)

        credential = self.credential_model(**kwargs)
        user_credentials = getattr(user, "credentials", None)
        if user_credentials is not None and hasattr(user_credentials, "append"):
            if previous is not None and previous in user_credentials:
                user_credentials.remove(previous)
            user_credentials.append(credential)
        elif hasattr(credential, "user_id"):
            credential.user_id = user.id

        self.session.add(credential)
        self.session.add(user)
        return credential

    async def update_sign_count(self, user, credential, sign_count):
        credential.sign_count = int(sign_count)
        credential.last_used_at = datetime.datetime.now(datetime.timezone.utc)
        self.session.add(credential)
        return credential

    async def commit(self):
        await self.session.commit()
