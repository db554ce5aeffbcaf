from functools import wraps

from flask import g

from utils.errors import Forbidden, Unauthenticated, NOT_ADMIN


def require_roles(*role_names: str):
    """
    Coarse route gate. Usage: @require_roles("administrator")
    The authorization guard still decides on the concrete entity.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = getattr(g, "auth", None)
            if actor is None:
                raise Unauthenticated()

            if actor.role not in role_names:
                raise Forbidden(reason=NOT_ADMIN)

            return fn(*args, **kwargs)
        return wrapper
    return decorator
