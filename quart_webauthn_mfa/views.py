"""JSON API blueprint for the two-factor login ceremonies."""

from __future__ import annotations

import logging

from quart import Blueprint, current_app, request
from werkzeug.exceptions import HTTPException

from .datastore import maybe_await
from .errors import InternalError, MFAError, SignCountRegressed, VerificationFailed
from .proxies import _mfa, current_session
from .signals import (
    credential_registered,
    first_factor_verified,
    sign_count_regressed,
    user_authenticated,
    user_logged_out,
)

logger = logging.getLogger(__name__)

auth_bp = Blueprint("webauthn_mfa", __name__, url_prefix="/api/auth")


async def _json_body() -> dict:
    payload = await request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _extract_assertion_payload(payload: dict):
    if isinstance(payload.get("assertion"), dict):
        return payload["assertion"]
    if "id" in payload and "response" in payload:
        return payload
    return None


async def _send(signal, **kwargs):
    app = current_app._get_current_object()
    await signal.send_async(app, _sync_wrapper=app.ensure_async, **kwargs)


@auth_bp.errorhandler(MFAError)
async def _handle_mfa_error(error):
    return error.to_dict(), error.status_code


@auth_bp.errorhandler(Exception)
async def _handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unhandled error in %s", request.path)
    internal = InternalError()
    return internal.to_dict(), internal.status_code


@auth_bp.post("/registration-options")
async def registration_options():
    payload = await _json_body()
    username = (payload.get("username") or "").strip()

    options = await _mfa.coordinator.begin_registration(
        current_session, username, _mfa.relying_party()
    )
    _mfa.save_session()
    return options


@auth_bp.post("/verify-registration")
async def verify_registration():
    payload = await _json_body()
    username = (payload.get("username") or "").strip()

    try:
        result = await _mfa.coordinator.complete_registration(
            current_session,
            username,
            payload.get("credential"),
            _mfa.relying_party(),
        )
    finally:
        _mfa.save_session()

    await _send(credential_registered, username=username)
    return result


@auth_bp.get("/webauthn/generate-challenge")
async def generate_challenge():
    options = await _mfa.coordinator.begin_authentication(
        current_session, _mfa.relying_party()
    )
    _mfa.save_session()
    return options


@auth_bp.post("/webauthn/verify")
async def verify_assertion():
    payload = await _json_body()

    try:
        result = await _mfa.coordinator.complete_authentication(
            current_session,
            _extract_assertion_payload(payload),
            _mfa.relying_party(),
        )
    except SignCountRegressed as exc:
        await _send(
            sign_count_regressed,
            username=exc.username,
            stored_count=exc.stored_count,
            reported_count=exc.reported_count,
        )
        raise InternalError() from exc
    except VerificationFailed as exc:
        # Failed assertion checks answer 500 on this endpoint; session, user
        # and device errors keep their own status.
        raise InternalError() from exc
    finally:
        _mfa.save_session()

    # Privilege changed; the old token must not carry over.
    _mfa.rotate_session()
    await _send(user_authenticated, username=current_session.username)
    return result


@auth_bp.post("/login")
async def login():
    payload = await _json_body()
    username = (payload.get("username") or "").strip()

    await _mfa.coordinator.login(current_session, username, payload.get("password"))
    _mfa.rotate_session()

    await _send(first_factor_verified, username=username)
    return {"success": True}


@auth_bp.post("/logout")
async def logout():
    username = _mfa.coordinator.logout(current_session)
    _mfa.end_session()
    if username:
        await _send(user_logged_out, username=username)
    return {"success": True}


@auth_bp.get("/session")
async def session_status():
    state = current_session._get_current_object()
    has_device = False
    if state.username:
        user = await maybe_await(_mfa.datastore.find_user(state.username))
        if user is not None:
            device = await maybe_await(_mfa.datastore.get_credential(user))
            has_device = device is not None
    return {
        "stage": state.stage.value,
        "username": state.username,
        "hasDevice": has_device,
    }
