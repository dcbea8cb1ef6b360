"""
Order reviews and the ratings derived from them.

A review is written once per (customer, order) after delivery. Restaurant and
menu item ratings are recalculated here, as explicit steps of submitting a
review, under a lock on the restaurant so two reviews landing together both
end up in the average. Reviewers earn the ``review`` loyalty award once per
order.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from app.core.locks import run_serialized
from app.core.rbac import TokenData
from app.models.menu_item import MenuItem
from app.models.order import Order, OrderStatus
from app.models.restaurant import Restaurant
from app.models.review import MAX_RATING, MIN_RATING, Review

logger = logging.getLogger(__name__)

RATING_STEP = Decimal("0.1")

REVIEW_SORTS = {
    "date": (Review.created_at.desc(), Review.id.desc()),
    "rating_high": (Review.rating.desc(), Review.id.desc()),
    "rating_low": (Review.rating.asc(), Review.id.desc()),
    "helpful": (Review.helpful_count.desc(), Review.id.desc()),
}


def average_rating(total: int, count: int) -> Decimal:
    """Mean rating to one decimal place, half-up; 0 with no reviews."""
    if not count:
        return Decimal("0.0")
    return (Decimal(total) / Decimal(count)).quantize(RATING_STEP, rounding=ROUND_HALF_UP)


class ReviewService:
    def __init__(self, db: Session, ledger=None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.ledger = ledger
        self.clock = clock

    @staticmethod
    def lock_key(restaurant_id: int) -> str:
        return f"ratings:{restaurant_id}"

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def submit(
        self,
        user_id: int,
        order_id: int,
        rating: int,
        comment: Optional[str] = None,
        menu_item_id: Optional[int] = None,
        images: Optional[List[str]] = None,
    ) -> Review:
        """Review a delivered order and refresh the affected ratings.

        Raises:
            ValidationError: rating outside 1-5, or a menu item from another restaurant.
            NotFoundError: the order is missing or not the caller's.
            StateError: the order is not delivered yet, or was already reviewed.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"rating must be between {MIN_RATING} and {MAX_RATING}", field="rating")

        order = self.db.get(Order, order_id)
        if order is None or order.user_id != user_id:
            raise NotFoundError("Order not found", order_id=order_id)
        if order.status != OrderStatus.DELIVERED.value:
            raise StateError("Only delivered orders can be reviewed", current_status=order.status)

        if menu_item_id is not None:
            item = self.db.get(MenuItem, menu_item_id)
            if item is None or item.restaurant_id != order.restaurant_id:
                raise ValidationError(
                    "Menu item does not belong to the ordered restaurant", field="menu_item_id"
                )

        def operation() -> Review:
            if self._find(user_id, order_id) is not None:
                raise StateError("You have already reviewed this order", order_id=order_id)
            review = Review(
                user_id=user_id,
                order_id=order_id,
                restaurant_id=order.restaurant_id,
                menu_item_id=menu_item_id,
                rating=rating,
                comment=comment,
                images=list(images or []),
            )
            self.db.add(review)
            self.db.flush()
            self.recalculate_restaurant_rating(order.restaurant_id)
            if menu_item_id is not None:
                self.recalculate_menu_item_rating(menu_item_id)
            return review

        try:
            review = run_serialized(self.db, self.lock_key(order.restaurant_id), operation)
        except IntegrityError:
            raise StateError("You have already reviewed this order", order_id=order_id)

        logger.info(f"Review {review.id} for order {order_id}: {rating} stars (user {user_id})")
        self._award_points(review)
        return review

    def _find(self, user_id: int, order_id: int) -> Optional[Review]:
        return self.db.scalar(
            select(Review).where(Review.user_id == user_id, Review.order_id == order_id)
        )

    def _award_points(self, review: Review) -> None:
        if self.ledger is None:
            return
        from app.services.loyalty_service import POINTS_RULES

        try:
            self.ledger.award(
                review.user_id,
                POINTS_RULES["review"],
                "review",
                order_ref=f"order:{review.order_id}",
                description=f"Review of order #{review.order_id}",
            )
        except Exception as e:
            logger.error(f"Review award for order {review.order_id} failed: {e}")

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def _stats(self, *filters) -> Tuple[Decimal, int]:
        count, total = self.db.execute(
            select(func.count(Review.id), func.coalesce(func.sum(Review.rating), 0)).where(*filters)
        ).one()
        return average_rating(int(total), int(count)), int(count)

    def recalculate_restaurant_rating(self, restaurant_id: int) -> Restaurant:
        """Set ``rating`` and ``review_count`` from the stored reviews. Caller commits."""
        restaurant = self.db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant not found", restaurant_id=restaurant_id)
        restaurant.rating, restaurant.review_count = self._stats(Review.restaurant_id == restaurant_id)
        return restaurant

    def recalculate_menu_item_rating(self, menu_item_id: int) -> MenuItem:
        item = self.db.get(MenuItem, menu_item_id)
        if item is None:
            raise NotFoundError("Menu item not found", menu_item_id=menu_item_id)
        item.rating_average, item.rating_count = self._stats(Review.menu_item_id == menu_item_id)
        return item

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_for_restaurant(
        self,
        restaurant_id: int,
        rating: Optional[int] = None,
        sort_by: str = "date",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Review], int, Dict[str, int]]:
        """One page of a restaurant's reviews plus a count per star rating."""
        if sort_by not in REVIEW_SORTS:
            raise ValidationError(f"Unknown sort: {sort_by}", field="sort_by")

        filters = [Review.restaurant_id == restaurant_id]
        if rating is not None:
            filters.append(Review.rating == rating)

        total = self.db.scalar(select(func.count(Review.id)).where(*filters))
        rows = self.db.scalars(
            select(Review)
            .where(*filters)
            .order_by(*REVIEW_SORTS[sort_by])
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).all()

        stats = {str(star): 0 for star in range(MIN_RATING, MAX_RATING + 1)}
        for star, count in self.db.execute(
            select(Review.rating, func.count(Review.id))
            .where(Review.restaurant_id == restaurant_id)
            .group_by(Review.rating)
        ):
            stats[str(star)] = count
        return list(rows), total, stats

    def list_for_menu_item(self, menu_item_id: int, page: int = 1, limit: int = 10):
        filters = [Review.menu_item_id == menu_item_id]
        total = self.db.scalar(select(func.count(Review.id)).where(*filters))
        rows = self.db.scalars(
            select(Review)
            .where(*filters)
            .order_by(*REVIEW_SORTS["date"])
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), total

    # ------------------------------------------------------------------
    # Feedback on reviews
    # ------------------------------------------------------------------

    def _get(self, review_id: int) -> Review:
        review = self.db.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review not found", review_id=review_id)
        return review

    def toggle_helpful(self, review_id: int, user_id: int) -> Tuple[bool, int]:
        """Flip the caller's helpful mark. Returns (marked, new count)."""
        def operation():
            review = self._get(review_id)
            users = list(review.helpful_users or [])
            if user_id in users:
                users.remove(user_id)
                marked = False
            else:
                users.append(user_id)
                marked = True
            review.helpful_users = users
            review.helpful_count = len(users)
            return marked, review.helpful_count

        return run_serialized(self.db, f"review:{review_id}", operation)

    def report(self, review_id: int, user_id: int) -> Review:
        """Flag a review. Reporting twice counts once."""
        def operation():
            review = self._get(review_id)
            users = list(review.reported_users or [])
            if user_id not in users:
                review.reported_users = users + [user_id]
                review.reported_count = len(users) + 1
                logger.info(f"Review {review_id} reported by user {user_id}")
            return review

        return run_serialized(self.db, f"review:{review_id}", operation)

    def respond(self, review_id: int, actor: TokenData, text: str) -> Review:
        """Owner's public reply. Only the restaurant's owner or an admin may answer."""
        review = self._get(review_id)
        if not actor.is_admin:
            restaurant = self.db.get(Restaurant, review.restaurant_id)
            if restaurant is None or restaurant.owner_id != actor.user_id:
                raise PermissionDeniedError("Only the restaurant owner can respond to reviews")

        review.response_text = text
        review.responded_at = self.clock()
        review.responded_by = actor.user_id
        self.db.commit()
        return review
