# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and account lifecycle.

- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12).
- The very first registered account becomes an approved, active admin;
  every later self-registration waits for admin approval.
- Session tokens are managed separately (see session_service.py).
"""

from __future__ import annotations

import re
import secrets

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Role, User
from ..permissions import ADMIN_ROLE, DEFAULT_ROLES, SALESPERSON_ROLE
from salesdesk.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet requirements."""
    pass


class AccountUnavailableError(Exception):
    """Credentials are right but the account may not log in."""
    pass


def validate_password_strength(password: str | None) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """Validate and hash a password; returns the bcrypt hash as text."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError("A valid email address is required")
    return value


def _require_names(first_name: str | None, last_name: str | None) -> tuple[str, str]:
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if not first or not last:
        raise ValueError("first_name and last_name are required")
    return first, last


def _email_taken(email: str, exclude_user_id: int | None = None) -> bool:
    query = db.session.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return db.session.query(query.exists()).scalar()


def create_default_roles() -> None:
    """Create admin, salesperson and visitor roles if they don't exist."""
    for name, display_name, description in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(name=name).first()
        if not existing:
            db.session.add(Role(
                name=name,
                display_name=display_name,
                description=description,
                is_system_role=True,
                is_active=True,
            ))

    db.session.commit()


def get_role_by_name(name: str) -> Role:
    role = db.session.query(Role).filter_by(name=name).first()
    if role is None:
        create_default_roles()
        role = db.session.query(Role).filter_by(name=name).first()
    if role is None:
        raise ValueError(f"Role {name} not found")
    return role


def register_user(first_name: str, last_name: str, email: str, password: str) -> tuple[User, bool]:
    """
    Self-registration.

    Returns (user, is_first_user). The first user is an approved, active
    admin; later users are inactive salespeople pending approval.
    """
    first, last = _require_names(first_name, last_name)
    email = normalize_email(email)
    password_hash = hash_password(password)

    if _email_taken(email):
        raise ValueError("A user with this email already exists")

    is_first_user = db.session.query(User).count() == 0
    role = get_role_by_name(ADMIN_ROLE if is_first_user else SALESPERSON_ROLE)

    user = User(
        first_name=first,
        last_name=last,
        name=f"{first} {last}",
        email=email,
        password_hash=password_hash,
        role_id=role.id,
        is_active=is_first_user,
        is_approved=is_first_user,
        approved_at=utcnow() if is_first_user else None,
    )

    db.session.add(user)
    db.session.commit()
    return user, is_first_user


def create_user(
    first_name: str,
    last_name: str,
    email: str,
    password: str | None,
    role_name: str = SALESPERSON_ROLE,
    role_id: int | None = None,
    is_virtual: bool = False,
    created_by_user_id: int | None = None,
) -> User:
    """
    Administrative account creation: the account is approved and active.

    Virtual users get an unusable random password and can never log in.
    """
    first, last = _require_names(first_name, last_name)
    email = normalize_email(email)

    if is_virtual:
        password_hash = hash_password(secrets.token_urlsafe(24))
    else:
        password_hash = hash_password(password)

    if _email_taken(email):
        raise ValueError("A user with this email already exists")

    if role_id is not None:
        role = db.session.get(Role, role_id)
        if role is None or not role.is_active:
            raise ValueError("Role not found or inactive")
    else:
        role = get_role_by_name(role_name)

    user = User(
        first_name=first,
        last_name=last,
        name=f"{first} {last}",
        email=email,
        password_hash=password_hash,
        role_id=role.id,
        is_active=True,
        is_approved=True,
        approved_by_user_id=created_by_user_id,
        approved_at=utcnow(),
        is_virtual=is_virtual,
        requires_communication_entry=not is_virtual,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials.

    Returns None on unknown email or wrong password. Raises
    AccountUnavailableError when the password matches but the account is
    pending, deactivated, virtual or penalty-locked.
    """
    try:
        email = normalize_email(email)
    except ValueError:
        return None

    user = db.session.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    if user.is_virtual:
        raise AccountUnavailableError("This account cannot log in")
    if not user.is_approved:
        raise AccountUnavailableError("Your account is waiting for admin approval")
    if user.is_penalty_deactivated:
        raise AccountUnavailableError("Your account was deactivated due to penalty points")
    if not user.is_active:
        raise AccountUnavailableError("Your account is inactive")

    return user


def update_profile(user: User, data: dict) -> User:
    """
    Update the caller's own name, email and password.

    Changing the password requires the current password.
    """
    if "first_name" in data or "last_name" in data:
        first, last = _require_names(
            data.get("first_name", user.first_name),
            data.get("last_name", user.last_name),
        )
        user.first_name = first
        user.last_name = last
        user.name = f"{first} {last}"

    if data.get("email"):
        email = normalize_email(data["email"])
        if email != user.email and _email_taken(email, exclude_user_id=user.id):
            raise ValueError("A user with this email already exists")
        user.email = email

    new_password = data.get("new_password")
    if new_password:
        if not verify_password(data.get("current_password") or "", user.password_hash):
            raise ValueError("Current password is incorrect")
        user.password_hash = hash_password(new_password)

    db.session.commit()
    return user
