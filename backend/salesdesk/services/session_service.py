# Overview: Service-layer operations for session tokens; encapsulates token issue, validation and revocation.

"""
Session token management.

Tokens are 32 random bytes (64 hex chars) handed to the client once; the
database keeps only their SHA-256 hash. A session dies on explicit logout,
after the absolute lifetime, after the idle window, or as soon as its user
can no longer log in (deactivated, unapproved, penalty-deactivated).
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from salesdesk.time_utils import utcnow


DEFAULT_ABSOLUTE_HOURS = 24
DEFAULT_IDLE_HOURS = 8


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", DEFAULT_ABSOLUTE_HOURS))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_HOURS", DEFAULT_IDLE_HOURS))


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a new session token for a user.

    Returns (session_record, plaintext_token). The client receives the
    plaintext token, the database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    user.last_login_at = now

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a session token and return its context, or None.

    Updates last_used_at on success so the idle window slides.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    now = utcnow()
    if session.expires_at.replace(tzinfo=None) < now:
        return None

    if now - session.last_used_at.replace(tzinfo=None) > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.can_login:
        _revoke(session, "User can no longer log in")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke a session token. Returns False if no live session matched."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Revoke every live session of a user (password change, deactivation)."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)
