"""Attestation and assertion verification backed by the webauthn package."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)


def bytes_to_base64url(value: bytes) -> str:
    """Encode bytes to unpadded base64url."""
    return base64.urlsafe_b64encode(value).decode("utf-8").rstrip("=")


def base64url_to_bytes(value: str) -> bytes:
    """Decode unpadded base64url into bytes."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(f"{value}{padding}")


@dataclass(frozen=True)
class RelyingParty:
    id: str
    name: str
    origin: str


@dataclass
class VerifiedCredential:
    """Outcome of a successful registration."""

    credential_id: bytes
    public_key: bytes
    sign_count: int
    device_type: str = "single_device"
    backed_up: bool = False
    user_verified: bool = False


@dataclass
class VerifiedAssertion:
    """Outcome of a successful authentication."""

    credential_id: bytes
    new_sign_count: int
    device_type: str = "single_device"
    backed_up: bool = False
    user_verified: bool = False


def options_to_json_dict(options) -> dict:
    """Serialize WebAuthn option objects into JSON-safe dictionaries."""
    payload = options_to_json(options)
    if isinstance(payload, bytes):
        return json.loads(payload.decode("utf-8"))
    if isinstance(payload, str):
        return json.loads(payload)
    if isinstance(payload, dict):
        return payload
    raise RuntimeError("Unsupported WebAuthn options payload type")


def _device_type(value) -> str:
    return str(getattr(value, "value", value) or "single_device")


class WebAuthnVerifier:
    """Attestation and assertion verifier delegating to py_webauthn.

    The coordinator only needs the four methods below, so any object that
    provides them (a fake in tests, another library in production) can take
    this one's place.
    """

    def registration_options(
        self,
        rp: RelyingParty,
        *,
        challenge: bytes,
        user_handle: bytes,
        username: str,
        exclude_credentials=(),
    ) -> dict:
        options = generate_registration_options(
            rp_id=rp.id,
            rp_name=rp.name,
            challenge=challenge,
            user_id=user_handle,
            user_name=username,
            user_display_name=username,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
            exclude_credentials=[
                PublicKeyCredentialDescriptor(id=credential_id)
                for credential_id in exclude_credentials
            ],
        )
        return options_to_json_dict(options)

    def verify_registration(
        self,
        rp: RelyingParty,
        credential: dict,
        *,
        challenge: bytes,
        require_user_verification: bool = False,
    ) -> VerifiedCredential:
        verification = verify_registration_response(
            credential=credential,
            expected_challenge=challenge,
            expected_rp_id=rp.id,
            expected_origin=rp.origin,
            require_user_verification=require_user_verification,
        )
        return VerifiedCredential(
            credential_id=verification.credential_id,
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
            device_type=_device_type(
                getattr(verification, "credential_device_type", None)
            ),
            backed_up=bool(getattr(verification, "credential_backed_up", False)),
            user_verified=bool(getattr(verification, "user_verified", False)),
        )

    def authentication_options(
        self,
        rp: RelyingParty,
        *,
        challenge: bytes,
        allow_credentials=(),
    ) -> dict:
        options = generate_authentication_options(
            rp_id=rp.id,
            challenge=challenge,
            allow_credentials=[
                PublicKeyCredentialDescriptor(id=credential_id)
                for credential_id in allow_credentials
            ],
            user_verification=UserVerificationRequirement.PREFERRED,
        )
        return options_to_json_dict(options)

    def verify_authentication(
        self,
        rp: RelyingParty,
        credential: dict,
        *,
        challenge: bytes,
        public_key: bytes,
        sign_count: int,
        require_user_verification: bool = False,
    ) -> VerifiedAssertion:
        verification = verify_authentication_response(
            credential=credential,
            expected_challenge=challenge,
            expected_rp_id=rp.id,
            expected_origin=rp.origin,
            credential_public_key=public_key,
            credential_current_sign_count=sign_count,
            require_user_verification=require_user_verification,
        )
        return VerifiedAssertion(
            credential_id=verification.credential_id,
            new_sign_count=verification.new_sign_count,
            device_type=_device_type(
                getattr(verification, "credential_device_type", None)
            ),
            backed_up=bool(getattr(verification, "credential_backed_up", False)),
            user_verified=bool(getattr(verification, "user_verified", False)),
        )
