# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Signup -> email verification -> login, plus password reset.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Verification tokens expire after 24 hours
- Password reset tokens are single-use, stored hashed, expire after 1 hour
- Session tokens managed separately (see session_service.py)

EMAIL FAILURE POLICY:
- Verification email fails on signup -> the new account is deleted again
  and the signup fails (an unverifiable account is worse than no account).
- Welcome email fails after verification -> logged and ignored.
"""

import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_BUYER, ROLE_SELLER
from ..errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from ..validation import require_fields, validate_email
from videgrenier.time_utils import utcnow
from . import session_service
from .email_service import get_mailer

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)

SIGNUP_ROLES = (ROLE_BUYER, ROLE_SELLER)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    reason = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _new_verification_token() -> tuple[str, object]:
    return secrets.token_hex(32), utcnow() + VERIFICATION_TOKEN_TTL


def register(
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: str = ROLE_BUYER,
) -> User:
    """
    Create an unverified account and send its verification email.

    Raises:
        ValidationError: missing fields, bad email, weak password, bad role
        ConflictError: email already registered
        UpstreamError: verification email could not be sent (account removed)
    """
    require_fields(
        {"first_name": first_name, "last_name": last_name, "email": email, "password": password},
        "first_name", "last_name", "email", "password",
    )
    email = validate_email(email)
    role = role or ROLE_BUYER
    if role not in SIGNUP_ROLES:
        raise ValidationError("Role must be buyer or seller")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already registered", reason="EMAIL_TAKEN")

    token, expires = _new_verification_token()
    user = User(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        email_verified=False,
        verification_token=token,
        verification_token_expires=expires,
    )
    db.session.add(user)
    db.session.commit()

    try:
        get_mailer().send_verification_email(user.email, token, user.first_name)
    except UpstreamError:
        current_app.logger.exception("Verification email failed for %s; removing account", email)
        db.session.delete(user)
        db.session.commit()
        raise UpstreamError(
            "Failed to send verification email. Please try again or contact support.",
            reason="VERIFICATION_EMAIL_FAILED",
        )

    current_app.logger.info("User %s registered as %s", user.id, role)
    return user


def verify_email(token: str) -> dict:
    """
    Redeem a verification token.

    Returns a status dict: {"status": "verified" | "already_verified" | "expired", "user": User | None}.
    Unknown tokens are reported as already verified (the token is cleared on use).
    """
    if not token:
        raise ValidationError("Verification token is required")

    user = db.session.query(User).filter_by(verification_token=token).first()
    if not user:
        return {"status": "already_verified", "user": None}

    if user.email_verified:
        return {"status": "already_verified", "user": user}

    if user.verification_token_expires and user.verification_token_expires < utcnow():
        return {"status": "expired", "user": user}

    user.email_verified = True
    user.verification_token = None
    user.verification_token_expires = None
    db.session.commit()

    try:
        get_mailer().send_welcome_email(user.email, user.first_name)
    except UpstreamError:
        current_app.logger.warning("Welcome email to %s failed; ignoring", user.email)

    return {"status": "verified", "user": user}


def resend_verification(email: str) -> None:
    email = validate_email(email)
    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        raise NotFoundError("User not found")
    if user.email_verified:
        raise ValidationError("Email already verified")

    token, expires = _new_verification_token()
    user.verification_token = token
    user.verification_token_expires = expires
    db.session.commit()

    get_mailer().send_verification_email(user.email, token, user.first_name)


def login(email: str, password: str, *, user_agent: str | None = None, ip_address: str | None = None):
    """
    Authenticate and open a session.

    Returns:
        (user, plaintext session token)

    Raises:
        AuthenticationError: unknown email or wrong password
        ForbiddenError: blocked account or unverified email
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise AuthenticationError("Invalid credentials", reason="INVALID_CREDENTIALS")

    if user.is_blocked:
        raise ForbiddenError("Your account has been blocked. Please contact support.", reason="ACCOUNT_BLOCKED")

    if not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials", reason="INVALID_CREDENTIALS")

    if not user.email_verified:
        raise ForbiddenError(
            "Please verify your email before logging in. Check your inbox for the verification link.",
            details={"email": user.email},
            reason="EMAIL_NOT_VERIFIED",
        )

    user.last_login_at = utcnow()
    _, token = session_service.create_session(user, user_agent=user_agent, ip_address=ip_address)
    return user, token


def forgot_password(email: str) -> None:
    """Send a reset link if the account exists. Silent otherwise."""
    if not email:
        raise ValidationError("Email is required")

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        return

    token = secrets.token_hex(32)
    user.reset_token_hash = session_service.hash_token(token)
    user.reset_token_expires = utcnow() + RESET_TOKEN_TTL
    db.session.commit()

    get_mailer().send_password_reset_email(user.email, token, user.first_name)


def reset_password(token: str, new_password: str) -> User:
    """Consume a reset token, set the new password and revoke every session."""
    if not token or not new_password:
        raise ValidationError("Token and new password are required")

    user = db.session.query(User).filter_by(reset_token_hash=session_service.hash_token(token)).first()
    if not user or not user.reset_token_expires or user.reset_token_expires < utcnow():
        raise ValidationError("Invalid or expired reset link", reason="INVALID_RESET_TOKEN")

    user.password_hash = hash_password(new_password)
    user.reset_token_hash = None
    user.reset_token_expires = None
    db.session.commit()

    session_service.revoke_all_user_sessions(user.id, reason="Password reset")
    return user
