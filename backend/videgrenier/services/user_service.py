# Overview: Service-layer operations for user administration; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Product, Sale, Supply, User
from ..models.auth import ROLE_ADMIN, ROLES
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..validation import require_fields, validate_email
from .auth_service import hash_password, verify_password
from . import session_service


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
    return role


def _check_email_free(email: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("Email already registered", reason="EMAIL_TAKEN")


def create_user(payload: dict) -> User:
    """Admin-created accounts are pre-verified."""
    require_fields(payload, "first_name", "last_name", "email", "password")
    email = validate_email(payload["email"])
    role = _check_role(payload.get("role") or "buyer")
    _check_email_free(email)

    user = User(
        first_name=payload["first_name"].strip(),
        last_name=payload["last_name"].strip(),
        email=email,
        password_hash=hash_password(payload["password"]),
        role=role,
        email_verified=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, payload: dict) -> User:
    user = get_user(user_id)

    if "email" in payload:
        email = validate_email(payload["email"])
        _check_email_free(email, exclude_id=user.id)
        user.email = email
    if "role" in payload:
        user.role = _check_role(payload["role"])
    for key in ("first_name", "last_name"):
        if key in payload:
            value = (payload[key] or "").strip()
            if not value:
                raise ValidationError(f"{key} cannot be blank")
            setattr(user, key, value)

    db.session.commit()
    return user


def delete_user(user_id: int, requester: User) -> User:
    """Users referenced by products, sales or supplies must be cleaned up first."""
    user = get_user(user_id)
    if user.id == requester.id:
        raise ForbiddenError("You cannot delete your own account")

    products = db.session.query(func.count(Product.id)).filter(Product.owner_id == user.id).scalar()
    sales = (
        db.session.query(func.count(Sale.id))
        .filter(or_(Sale.seller_id == user.id, Sale.buyer_id == user.id))
        .scalar()
    )
    supplies = db.session.query(func.count(Supply.id)).filter(Supply.user_id == user.id).scalar()
    if products or sales or supplies:
        raise ConflictError(
            "User still owns products, sales or supplies",
            details={"products": products, "sales": sales, "supplies": supplies},
            reason="USER_HAS_DEPENDENCIES",
        )

    db.session.delete(user)
    db.session.commit()
    return user


def change_password(user_id: int, current_password: str, new_password: str, requester: User) -> None:
    if requester.id != user_id and requester.role != ROLE_ADMIN:
        raise ForbiddenError("You can only change your own password")

    user = get_user(user_id)
    if not verify_password(current_password or "", user.password_hash):
        raise ValidationError("Current password is incorrect", reason="INVALID_CURRENT_PASSWORD")

    user.password_hash = hash_password(new_password or "")
    db.session.commit()


def toggle_block(user_id: int) -> User:
    """Flip is_blocked. Blocking also ends every open session of the user."""
    user = get_user(user_id)
    if user.role == ROLE_ADMIN:
        raise ForbiddenError("Cannot block an admin account")

    user.is_blocked = not user.is_blocked
    db.session.commit()

    if user.is_blocked:
        session_service.revoke_all_user_sessions(user.id, reason="Account blocked")
    return user
