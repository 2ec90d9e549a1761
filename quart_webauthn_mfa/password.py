"""Password hashing and validation helpers."""

from passlib.context import CryptContext

_pwd_context: CryptContext | None = None


def init_password_context(app):
    """Initialize passlib context from app config."""
    global _pwd_context

    scheme = app.config.get("WAN_PASSWORD_HASH", "pbkdf2_sha512")
    _pwd_context = CryptContext(schemes=[scheme], deprecated="auto")


def _ensure_context() -> CryptContext:
    if _pwd_context is None:
        raise RuntimeError("Password context is not initialized")
    return _pwd_context


def hash_password(password: str) -> str:
    return _ensure_context().hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    context = _ensure_context()
    if not password_hash:
        # Burn the same time as a real check so unknown users are not revealed.
        context.dummy_verify()
        return False
    try:
        return context.verify(password, password_hash)
    except ValueError:
        # Stored value is not a hash this context understands.
        return False

