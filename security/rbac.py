from functools import wraps
from flask import g, jsonify

ADMIN_ROLE = "ADMIN"
USER_ROLE = "USER"

def actor_role(user) -> str:
    """Collapse a user's roles into the single role bookings care about."""
    if user is not None and ADMIN_ROLE in user.role_names:
        return ADMIN_ROLE
    return USER_ROLE

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required", code="UNAUTHORIZED"), 401

            if not user.role_names.intersection(set(role_names)):
                return jsonify(error="Forbidden", code="FORBIDDEN"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
