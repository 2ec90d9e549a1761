"""Route guards keyed on the session's authentication stage."""

from functools import wraps

from quart import abort, current_app

from .proxies import current_session


def first_factor_required(func):
    """Require a session that has passed the password check."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        if not current_session.first_factor_verified:
            abort(401)
        return await current_app.ensure_async(func)(*args, **kwargs)

    return wrapper


def auth_required(func):
    """Require a session that has completed both factors."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        if not current_session.fully_authenticated:
            abort(401)
        return await current_app.ensure_async(func)(*args, **kwargs)

    return wrapper
