"""WebAuthn relying-party ceremony coordinator.

The coordinator owns the challenge lifecycle, the per-session stage
transitions and the signature counter bookkeeping. Byte-level attestation and
assertion checks are delegated to a verifier (see
:class:`~quart_webauthn_mfa.webauthn.WebAuthnVerifier`), and users live in an
injected datastore. Session state is passed in explicitly and mutated in
place; persisting it is the caller's job.
"""

from __future__ import annotations

import logging
import secrets

from .datastore import maybe_await
from .errors import (
    InvalidCredentials,
    NoDeviceRegistered,
    NotAuthenticated,
    SessionExpired,
    SignCountRegressed,
    UserNotFound,
    VerificationFailed,
)
from .password import verify_password
from .sessions import AUTHENTICATION, REGISTRATION, AuthStage, SessionState
from .webauthn import bytes_to_base64url

logger = logging.getLogger(__name__)

MIN_CHALLENGE_BYTES = 16


class CeremonyCoordinator:
    def __init__(
        self,
        datastore,
        verifier,
        *,
        challenge_bytes: int = 32,
        challenge_timeout: int = 300,
        require_user_verification: bool = False,
        registration_requires_login: bool = False,
    ):
        if challenge_bytes < MIN_CHALLENGE_BYTES:
            raise ValueError(
                f"Challenges must be at least {MIN_CHALLENGE_BYTES} bytes long"
            )
        self.datastore = datastore
        self.verifier = verifier
        self.challenge_bytes = challenge_bytes
        self.challenge_timeout = challenge_timeout
        self.require_user_verification = require_user_verification
        self.registration_requires_login = registration_requires_login

    def _new_challenge(self) -> bytes:
        return secrets.token_bytes(self.challenge_bytes)

    def _consume(self, state: SessionState, ceremony: str):
        pending = state.consume_challenge(ceremony, self.challenge_timeout)
        if pending is None:
            logger.info("No live %s challenge bound to session", ceremony)
            raise SessionExpired()
        return pending

    def _check_registration_allowed(self, state: SessionState, username, device):
        if not self.registration_requires_login:
            return
        if not state.first_factor_verified or state.username != username:
            raise NotAuthenticated()
        # Replacing an existing key takes both factors.
        if device is not None and not state.fully_authenticated:
            logger.warning(
                "Refused to replace the security key of %r without a second factor",
                username,
            )
            raise NotAuthenticated()

    async def _find_user(self, username):
        if not username:
            raise UserNotFound()
        user = await maybe_await(self.datastore.find_user(username))
        if user is None:
            raise UserNotFound()
        return user

    # First factor

    async def login(self, state: SessionState, username: str, password: str):
        """Check the password and move the session past the first factor.

        A failed attempt leaves ``state`` exactly as it was.
        """
        user = None
        if username:
            user = await maybe_await(self.datastore.find_user(username))
        password_hash = getattr(user, "password", None) if user else None
        if not verify_password(password or "", password_hash):
            logger.info("Rejected password for %r", username)
            raise InvalidCredentials()

        state.stage = AuthStage.FIRST_FACTOR_VERIFIED
        state.username = user.username
        state.pending = None
        logger.debug("First factor verified for %r", user.username)
        return user

    def logout(self, state: SessionState):
        username = state.username
        state.reset()
        return username

    # Registration

    async def begin_registration(self, state: SessionState, username: str, rp):
        if not username:
            raise UserNotFound()
        user = await maybe_await(self.datastore.find_user(username))
        device = None
        if user is not None:
            device = await maybe_await(self.datastore.get_credential(user))
        self._check_registration_allowed(state, username, device)

        exclude = []
        if user is not None:
            user_handle = getattr(user, "webauthn_user_handle", None)
            if not user_handle:
                user_handle = await maybe_await(
                    self.datastore.set_user_handle(user, secrets.token_urlsafe(32))
                )
                await maybe_await(self.datastore.commit())
            if device is not None:
                exclude.append(device.credential_id)
        else:
            # Unknown names still get options; completion reports UserNotFound.
            user_handle = secrets.token_urlsafe(32)

        challenge = self._new_challenge()
        options = self.verifier.registration_options(
            rp,
            challenge=challenge,
            user_handle=user_handle.encode("utf-8"),
            username=username,
            exclude_credentials=exclude,
        )
        state.issue_challenge(challenge, REGISTRATION, username=username)
        logger.debug("Issued registration challenge for %r", username)
        return options

    async def complete_registration(
        self, state: SessionState, username: str, credential, rp
    ) -> dict:
        pending = self._consume(state, REGISTRATION)
        if pending.username != username:
            logger.warning(
                "Registration for %r answered a challenge issued for %r",
                username,
                pending.username,
            )
            raise VerificationFailed()

        user = await self._find_user(username)
        self._check_registration_allowed(
            state, username, await maybe_await(self.datastore.get_credential(user))
        )
        if not isinstance(credential, dict):
            raise VerificationFailed("Invalid credential payload")

        try:
            verified = self.verifier.verify_registration(
                rp,
                credential,
                challenge=pending.challenge,
                require_user_verification=self.require_user_verification,
            )
        except Exception as exc:
            logger.warning("Registration verification failed for %r: %s", username, exc)
            raise VerificationFailed() from exc

        await maybe_await(
            self.datastore.set_credential(
                user,
                credential_id=verified.credential_id,
                public_key=verified.public_key,
                sign_count=verified.sign_count,
                device_type=verified.device_type,
                backed_up=verified.backed_up,
            )
        )
        await maybe_await(self.datastore.commit())
        logger.info("Registered security key for %r", username)
        return {"verified": True}

    # Authentication

    async def begin_authentication(self, state: SessionState, rp):
        allow = []
        if state.first_factor_verified and state.username:
            user = await maybe_await(self.datastore.find_user(state.username))
            device = (
                await maybe_await(self.datastore.get_credential(user))
                if user is not None
                else None
            )
            if device is not None:
                allow.append(device.credential_id)

        challenge = self._new_challenge()
        options = self.verifier.authentication_options(
            rp, challenge=challenge, allow_credentials=allow
        )
        state.issue_challenge(challenge, AUTHENTICATION, username=state.username)
        logger.debug("Issued authentication challenge for %r", state.username)
        return options

    async def complete_authentication(self, state: SessionState, assertion, rp) -> dict:
        pending = self._consume(state, AUTHENTICATION)
        if not state.first_factor_verified or not state.username:
            raise NotAuthenticated()

        user = await self._find_user(state.username)
        device = await maybe_await(self.datastore.get_credential(user))
        if device is None:
            raise NoDeviceRegistered()
        if not isinstance(assertion, dict):
            raise VerificationFailed("Invalid assertion payload")

        try:
            verified = self.verifier.verify_authentication(
                rp,
                assertion,
                challenge=pending.challenge,
                public_key=device.public_key,
                sign_count=device.sign_count,
                require_user_verification=self.require_user_verification,
            )
        except Exception as exc:
            logger.warning(
                "Assertion verification failed for %r: %s", state.username, exc
            )
            raise VerificationFailed() from exc

        if bytes(verified.credential_id) != bytes(device.credential_id):
            logger.warning("Assertion for %r used an unknown credential", user.username)
            raise VerificationFailed()

        stored, reported = int(device.sign_count), int(verified.new_sign_count)
        if (stored or reported) and reported <= stored:
            logger.warning(
                "Sign count for %r went from %d to %d; possible cloned authenticator",
                user.username,
                stored,
                reported,
            )
            raise SignCountRegressed(user.username, stored, reported)

        await maybe_await(self.datastore.update_sign_count(user, device, reported))
        await maybe_await(self.datastore.commit())
        state.stage = AuthStage.FULLY_AUTHENTICATED
        logger.info("Second factor verified for %r", user.username)

        return {
            "verified": True,
            "authenticationInfo": {
                "credentialID": bytes_to_base64url(bytes(verified.credential_id)),
                "newCounter": reported,
                "userVerified": verified.user_verified,
                "credentialDeviceType": verified.device_type,
                "credentialBackedUp": verified.backed_up,
                "origin": rp.origin,
                "rpID": rp.id,
            },
        }
