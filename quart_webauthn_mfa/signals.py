"""Signals emitted by quart-webauthn-mfa."""

from blinker import Namespace

_signals = Namespace()

first_factor_verified = _signals.signal("first-factor-verified")
user_authenticated = _signals.signal("user-authenticated")
credential_registered = _signals.signal("credential-registered")
sign_count_regressed = _signals.signal("sign-count-regressed")
user_logged_out = _signals.signal("user-logged-out")
