# Overview: Service-layer operations for product reviews; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Review, Sale, User
from ..models.reviews import REVIEW_STATUSES
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..validation import coerce_int, require_fields, validate_email
from .concurrency import run_with_retry


def _check_moderator(review: Review, user: User) -> None:
    if user.is_admin:
        return
    if review.product is None or review.product.owner_id != user.id:
        raise ForbiddenError("Only admins or the product's seller can moderate this review")


def create_review(payload: dict) -> Review:
    """
    Public review submission. Starts "pending" until moderated.

    Raises:
        ValidationError: missing fields or rating outside 1..5
        NotFoundError: product does not exist
        ConflictError: this email already reviewed the product
    """
    require_fields(payload, "product_id", "customer_name", "customer_email", "rating")
    product_id = coerce_int("product_id", payload["product_id"])
    rating = coerce_int("rating", payload["rating"])
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    email = validate_email(payload["customer_email"])

    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    existing = db.session.query(Review).filter_by(product_id=product_id, customer_email=email).first()
    if existing:
        raise ConflictError("You have already reviewed this product", reason="ALREADY_REVIEWED")

    bought = (
        db.session.query(Sale.id)
        .filter(Sale.product_id == product_id, func.lower(Sale.buyer_email) == email)
        .first()
        is not None
    )

    review = Review(
        product_id=product_id,
        customer_name=str(payload["customer_name"]).strip(),
        customer_email=email,
        rating=rating,
        title=payload.get("title"),
        comment=payload.get("comment"),
        verified=bought,
        status="pending",
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You have already reviewed this product", reason="ALREADY_REVIEWED")
    return review


def list_reviews(
    *,
    product_id: int | None = None,
    status: str | None = None,
    seller_id: int | None = None,
) -> list[Review]:
    query = db.session.query(Review).join(Product, Review.product_id == Product.id)
    if seller_id is not None:
        query = query.filter(Product.owner_id == seller_id)
    if product_id is not None:
        query = query.filter(Review.product_id == product_id)
    if status:
        query = query.filter(Review.status == status)
    return query.order_by(Review.created_at.desc(), Review.id.desc()).all()


def get_review(review_id: int) -> Review:
    review = db.session.get(Review, review_id)
    if not review:
        raise NotFoundError("Review not found")
    return review


def product_review_stats(product_id: int) -> dict:
    """Approved reviews only: count, average and per-star counts."""
    def stars(n):
        return func.sum(case((Review.rating == n, 1), else_=0))

    row = (
        db.session.query(
            func.count(Review.id),
            func.avg(Review.rating),
            stars(5), stars(4), stars(3), stars(2), stars(1),
        )
        .filter(Review.product_id == product_id, Review.status == "approved")
        .one()
    )
    total, average, five, four, three, two, one = row
    return {
        "product_id": product_id,
        "total_reviews": total or 0,
        "average_rating": round(float(average), 2) if average is not None else None,
        "five_star": five or 0,
        "four_star": four or 0,
        "three_star": three or 0,
        "two_star": two or 0,
        "one_star": one or 0,
    }


def update_review_status(review_id: int, status: str, user: User) -> Review:
    if status not in REVIEW_STATUSES:
        raise ValidationError("Invalid status", details={"allowed": list(REVIEW_STATUSES)})

    review = get_review(review_id)
    _check_moderator(review, user)
    review.status = status
    db.session.commit()
    return review


def mark_helpful(review_id: int) -> Review:
    def _op():
        review = get_review(review_id)
        review.helpful_count = Review.helpful_count + 1
        db.session.commit()
        db.session.refresh(review)
        return review

    return run_with_retry(_op)


def delete_review(review_id: int, user: User) -> None:
    review = get_review(review_id)
    _check_moderator(review, user)
    db.session.delete(review)
    db.session.commit()
