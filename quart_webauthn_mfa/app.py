"""Demo application: password first factor, security key second factor."""

from __future__ import annotations

import logging
import os

from quart import Quart

from .core import WebAuthnMFA
from .datastore import InMemoryUserDatastore
from .decorators import auth_required
from .password import hash_password
from .proxies import current_session


def create_app(config=None, datastore=None, **kwargs) -> Quart:
    app = Quart(__name__)
    app.config.update(
        WAN_RP_NAME="WebAuthn Demo",
        WAN_SEED_USERS={},
        LOG_LEVEL="INFO",
    )
    app.config.from_prefixed_env("QUART")
    if config:
        app.config.update(config)

    if not app.config.get("SECRET_KEY"):
        raise RuntimeError("SECRET_KEY must be supplied, e.g. via QUART_SECRET_KEY")

    logging.basicConfig(level=app.config["LOG_LEVEL"])

    datastore = datastore or InMemoryUserDatastore()
    WebAuthnMFA(app, datastore, **kwargs)

    seed_users = app.config.get("WAN_SEED_USERS") or {}
    if seed_users and not isinstance(datastore, InMemoryUserDatastore):
        raise RuntimeError("WAN_SEED_USERS only applies to the in-memory datastore")
    for username, password in seed_users.items():
        if datastore.find_user(username) is None:
            datastore.create_user(username=username, password=hash_password(password))

    @app.get("/api/me")
    @auth_required
    async def me():
        return {"username": current_session.username}

    return app


def run():
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "3000")),
        certfile=os.environ.get("TLS_CERTFILE"),
        keyfile=os.environ.get("TLS_KEYFILE"),
    )


if __name__ == "__main__":
    run()
