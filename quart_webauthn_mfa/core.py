"""Core extension initialization and per-request session lifecycle."""

from __future__ import annotations

from quart import current_app, g, request, session

from .ceremony import CeremonyCoordinator
from .password import init_password_context
from .sessions import AuthStage, InMemorySessionStore, SessionState
from .webauthn import RelyingParty, WebAuthnVerifier


class WebAuthnMFA:
    """Quart extension wiring the ceremony coordinator into an application."""

    def __init__(self, app=None, datastore=None, **kwargs):
        self.app = None
        self.datastore = datastore
        self.verifier = kwargs.get("verifier")
        self.session_store = kwargs.get("session_store")
        self.coordinator = None

        if app is not None:
            self.init_app(app, datastore=datastore, **kwargs)

    def init_app(self, app, datastore=None, **kwargs):
        self.app = app
        if datastore is not None:
            self.datastore = datastore
        if self.datastore is None:
            raise RuntimeError("WebAuthnMFA requires a datastore")

        self.verifier = kwargs.get("verifier", self.verifier) or WebAuthnVerifier()
        self._load_defaults(app)
        self.session_store = kwargs.get("session_store", self.session_store)
        if self.session_store is None:
            self.session_store = InMemorySessionStore(
                idle_timeout=int(app.config["WAN_SESSION_TIMEOUT"])
            )
        init_password_context(app)

        self.coordinator = CeremonyCoordinator(
            self.datastore,
            self.verifier,
            challenge_bytes=int(app.config["WAN_CHALLENGE_BYTES"]),
            challenge_timeout=int(app.config["WAN_CHALLENGE_TIMEOUT"]),
            require_user_verification=bool(
                app.config["WAN_REQUIRE_USER_VERIFICATION"]
            ),
            registration_requires_login=bool(
                app.config["WAN_REGISTRATION_REQUIRES_LOGIN"]
            ),
        )

        from .views import auth_bp

        if "webauthn_mfa" not in app.blueprints:
            app.register_blueprint(auth_bp)

        app.extensions["webauthn_mfa"] = self

        if not app.extensions.get("webauthn_mfa_load_session_registered", False):

            @app.before_request
            async def _mfa_load_session():
                self.load_session()

            app.extensions["webauthn_mfa_load_session_registered"] = True

        return self

    @staticmethod
    def _load_defaults(app):
        defaults = {
            "WAN_RP_ID": None,
            "WAN_RP_NAME": None,
            "WAN_EXPECTED_ORIGIN": None,
            "WAN_CHALLENGE_BYTES": 32,
            "WAN_CHALLENGE_TIMEOUT": 300,
            "WAN_SESSION_TIMEOUT": 1800,
            "WAN_REQUIRE_USER_VERIFICATION": False,
            "WAN_REGISTRATION_REQUIRES_LOGIN": False,
            "WAN_PASSWORD_HASH": "pbkdf2_sha512",
            "WAN_SESSION_COOKIE_KEY": "_mfa_sid",
        }

        for key, value in defaults.items():
            app.config.setdefault(key, value)

    def _token(self):
        return session.get(current_app.config["WAN_SESSION_COOKIE_KEY"])

    def load_session(self) -> SessionState:
        g._mfa_session = self.session_store.load(self._token())
        return g._mfa_session

    def save_session(self, state: SessionState | None = None):
        state = state or g._mfa_session
        key = current_app.config["WAN_SESSION_COOKIE_KEY"]
        if state.stage is AuthStage.ANONYMOUS and state.pending is None:
            # Nothing worth keeping server-side.
            self.session_store.delete(session.pop(key, None))
            return
        token = session.get(key)
        if token is None:
            token = self.session_store.new_token()
            session[key] = token
        self.session_store.save(token, state)

    def rotate_session(self, state: SessionState | None = None):
        """Move the state under a fresh token, dropping the old one."""
        state = state or g._mfa_session
        key = current_app.config["WAN_SESSION_COOKIE_KEY"]
        self.session_store.delete(session.get(key))
        token = self.session_store.new_token()
        session[key] = token
        self.session_store.save(token, state)

    def end_session(self):
        key = current_app.config["WAN_SESSION_COOKIE_KEY"]
        self.session_store.delete(session.pop(key, None))
        g._mfa_session = SessionState()

    @staticmethod
    def relying_party() -> RelyingParty:
        config = current_app.config
        rp_id = config.get("WAN_RP_ID") or request.host.split(":", 1)[0]
        rp_name = config.get("WAN_RP_NAME") or current_app.name
        origin = config.get("WAN_EXPECTED_ORIGIN") or f"{request.scheme}://{request.host}"
        return RelyingParty(id=str(rp_id), name=str(rp_name), origin=str(origin))
