"""Public API for quart-webauthn-mfa."""

from .ceremony import CeremonyCoordinator
from .core import WebAuthnMFA
from .datastore import InMemoryUserDatastore, SQLAlchemyUserDatastore
from .decorators import auth_required, first_factor_required
from .errors import (
    InternalError,
    InvalidCredentials,
    MFAError,
    NoDeviceRegistered,
    NotAuthenticated,
    SessionExpired,
    SignCountRegressed,
    UserNotFound,
    VerificationFailed,
)
from .models import Credential, User, UserMixin
from .password import hash_password, verify_password
from .proxies import current_session
from .sessions import AuthStage, InMemorySessionStore, SessionState
from .signals import (
    credential_registered,
    first_factor_verified,
    sign_count_regressed,
    user_authenticated,
    user_logged_out,
)
from .webauthn import RelyingParty, WebAuthnVerifier

__all__ = [
    "WebAuthnMFA",
    "CeremonyCoordinator",
    "InMemoryUserDatastore",
    "SQLAlchemyUserDatastore",
    "InMemorySessionStore",
    "SessionState",
    "AuthStage",
    "WebAuthnVerifier",
    "RelyingParty",
    "auth_required",
    "first_factor_required",
    "User",
    "Credential",
    "UserMixin",
    "hash_password",
    "verify_password",
    "current_session",
    "MFAError",
    "SessionExpired",
    "NotAuthenticated",
    "UserNotFound",
    "NoDeviceRegistered",
    "InvalidCredentials",
    "VerificationFailed",
    "SignCountRegressed",
    "InternalError",
    "first_factor_verified",
    "user_authenticated",
    "credential_registered",
    "sign_count_regressed",
    "user_logged_out",
]
