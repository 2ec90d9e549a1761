"""Proxy objects for the current session state and active extension."""

from quart import current_app, g
from werkzeug.local import LocalProxy

from .sessions import SessionState


def _get_current_session():
    state = getattr(g, "_mfa_session", None)
    if state is None:
        state = g._mfa_session = SessionState()
    return state


current_session = LocalProxy(_get_current_session)


def _get_mfa():
    return current_app.extensions["webauthn_mfa"]


_mfa = LocalProxy(_get_mfa)
