# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, g

from .responses import error_response
from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user (the User) and g.session_context.
    Returns 401 when the header is missing, the token is unknown, expired or
    revoked, or the account can no longer log in.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return error_response("Authentication required", 401)

        context = session_service.validate_session(token)
        if not context:
            return error_response("Invalid or expired token", 401)

        g.current_user = context.user
        g.session_context = context
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission. Apply below @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response("Authentication required", 401)

            try:
                permission_service.require_permission(
                    user=g.current_user,
                    permission_code=permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except PermissionDeniedError as e:
                return error_response(str(e), 403, required_permission=permission_code)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def has_permission(permission_code: str) -> bool:
    """In-route check against the current user, for row-level visibility rules."""
    return _is_authenticated() and permission_service.user_has_permission(g.current_user, permission_code)
