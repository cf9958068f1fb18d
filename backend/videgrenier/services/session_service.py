# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

Opaque bearer tokens: the client holds the plaintext, the database holds
only its SHA-256.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS)
- Revocable on logout, password reset, or account block
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from videgrenier.time_utils import utcnow


@dataclass
class SessionContext:
    """Result of validate_session: the user and the session row backing the request."""
    user: User
    session: SessionToken


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"])


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_IDLE_TIMEOUT_HOURS"])


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are high-entropy, so a fast hash is sufficient (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
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
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long, or revoked.
    Blocked accounts are NOT rejected here; require_auth reports them as 403.

    Updates last_used_at on successful validation.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user:
        _revoke(session, "User deleted")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """
    Revoke all active sessions for a user.

    Returns count of sessions revoked.
    """
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False,
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """Delete expired or revoked sessions older than 30 days. Returns count deleted."""
    now = utcnow()
    cutoff = now - timedelta(days=30)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
