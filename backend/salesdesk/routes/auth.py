# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes.

- First registered account becomes the admin and is logged in at once
- Later registrations wait for admin approval and get no token
- Bearer session tokens (see session_service)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..responses import error_response
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services import activity_service
from ..services.auth_service import AccountUnavailableError, PasswordValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    return {
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
    }


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    try:
        user, is_first_user = auth_service.register_user(
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email"),
            password=data.get("password"),
        )
    except PasswordValidationError as e:
        return error_response(str(e), 400)
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return error_response("Internal server error", 500)

    activity_service.log_activity(
        user_id=user.id,
        action="user_registered",
        description=f"{user.name} registered",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )

    if not is_first_user:
        return jsonify({
            "message": "Registration received. Your account is waiting for admin approval.",
            "user": user.to_dict(),
            "requires_approval": True,
        }), 201

    _, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "message": "Admin account created",
        "token": token,
        **_user_payload(user),
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header of later requests.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        return error_response("email and password are required", 400)

    try:
        user = auth_service.authenticate(email, password)
    except AccountUnavailableError as e:
        return error_response(str(e), 401)

    if not user:
        return error_response("Invalid credentials", 401)

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    activity_service.log_activity(
        user_id=user.id,
        action="login",
        description=f"{user.name} logged in",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        related_model="SessionToken",
        related_id=session.id,
    )
    return jsonify({"token": token, **_user_payload(user)})


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token, reason="User logout")
    return jsonify({"message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(_user_payload(g.current_user))


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_profile(g.current_user, data)
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Profile updated", **_user_payload(user)})
