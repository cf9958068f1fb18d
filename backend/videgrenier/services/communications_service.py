# Overview: Service-layer operations for newsletter and contact form; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import NewsletterSubscription
from ..errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from ..validation import validate_email
from videgrenier.time_utils import utcnow
from .email_service import get_mailer


# =============================================================================
# NEWSLETTER
# =============================================================================

def subscribe(email: str) -> tuple[NewsletterSubscription, bool]:
    """
    Subscribe an address, reactivating it if it had unsubscribed.

    Returns:
        (subscription, created) where created is False for a reactivation

    Raises:
        ValidationError: malformed email
        ConflictError: address already actively subscribed
    """
    email = validate_email(email)

    existing = db.session.query(NewsletterSubscription).filter_by(email=email).first()
    if existing:
        if existing.is_active:
            raise ConflictError("This email is already subscribed to our newsletter.", reason="ALREADY_SUBSCRIBED")
        existing.is_active = True
        existing.subscribed_at = utcnow()
        existing.unsubscribed_at = None
        db.session.commit()
        return existing, False

    subscription = NewsletterSubscription(email=email, is_active=True, subscribed_at=utcnow())
    db.session.add(subscription)
    db.session.commit()
    return subscription, True


def list_subscribers() -> list[NewsletterSubscription]:
    return (
        db.session.query(NewsletterSubscription)
        .order_by(NewsletterSubscription.subscribed_at.desc(), NewsletterSubscription.id.desc())
        .all()
    )


def newsletter_stats() -> dict:
    """Active subscribers in total and those who joined in the last 30 days."""
    active = db.session.query(NewsletterSubscription).filter(NewsletterSubscription.is_active.is_(True))
    since = utcnow() - timedelta(days=30)
    return {
        "total": active.count(),
        "last_month": active.filter(NewsletterSubscription.subscribed_at >= since).count(),
    }


def _get_subscription(subscription_id: int) -> NewsletterSubscription:
    subscription = db.session.get(NewsletterSubscription, subscription_id)
    if not subscription:
        raise NotFoundError("Subscriber not found")
    return subscription


def unsubscribe(subscription_id: int, *, permanent: bool = False) -> NewsletterSubscription:
    subscription = _get_subscription(subscription_id)
    if permanent:
        db.session.delete(subscription)
    else:
        subscription.is_active = False
        subscription.unsubscribed_at = utcnow()
    db.session.commit()
    return subscription


def reactivate(subscription_id: int) -> NewsletterSubscription:
    subscription = _get_subscription(subscription_id)
    subscription.is_active = True
    subscription.unsubscribed_at = None
    db.session.commit()
    return subscription


# =============================================================================
# CONTACT FORM
# =============================================================================

def submit_contact_form(payload: dict) -> None:
    """
    Forward a contact message to the admin mailbox and acknowledge it.

    The admin notification must go out or the submission fails; the
    confirmation to the sender is best-effort.
    """
    fields = ("name", "email", "subject", "message")
    contact = {f: str(payload.get(f) or "").strip() for f in fields}
    if not all(contact.values()):
        raise ValidationError("All fields are required")
    try:
        contact["email"] = validate_email(contact["email"])
    except ValidationError:
        raise ValidationError("Invalid email format")

    mailer = get_mailer()
    try:
        mailer.send_contact_notification(contact)
    except UpstreamError:
        current_app.logger.exception("Contact notification from %s failed", contact["email"])
        raise UpstreamError(
            "Failed to send your message. Please try again or contact us directly.",
            reason="CONTACT_DELIVERY_FAILED",
        )

    try:
        mailer.send_contact_confirmation(contact)
    except UpstreamError:
        current_app.logger.warning("Contact confirmation to %s failed; ignoring", contact["email"])
