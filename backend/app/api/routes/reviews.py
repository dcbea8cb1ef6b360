"""Review API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.api.deps import ReviewServiceDep
from app.core.rate_limit import limiter, user_limiter
from app.core.rbac import CurrentUser, RequireRestaurantOwner
from app.core.responses import paginated_response
from app.models.review import MAX_RATING, MIN_RATING
from app.schemas.review import ReviewCreate, ReviewOut, ReviewReply

logger = logging.getLogger(__name__)

router = APIRouter()


def _serialize(rows) -> list:
    return [ReviewOut.model_validate(r).model_dump(mode="json") for r in rows]


@router.post("/", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
@user_limiter.limit("10/minute")
def create_review(
    request: Request,
    body: ReviewCreate,
    reviews: ReviewServiceDep,
    current_user: CurrentUser,
):
    """Review a delivered order. Updates the restaurant (and dish) rating and awards points."""
    return reviews.submit(
        current_user.user_id,
        body.order_id,
        body.rating,
        comment=body.comment,
        menu_item_id=body.menu_item_id,
        images=body.images,
    )


@router.get("/restaurant/{restaurant_id}")
@limiter.limit("60/minute")
def get_restaurant_reviews(
    request: Request,
    restaurant_id: int,
    reviews: ReviewServiceDep,
    rating: Optional[int] = Query(None, ge=MIN_RATING, le=MAX_RATING),
    sort_by: str = "date",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    rows, total, stats = reviews.list_for_restaurant(
        restaurant_id, rating=rating, sort_by=sort_by, page=page, limit=limit
    )
    return paginated_response(_serialize(rows), total, page=page, limit=limit, rating_stats=stats)


@router.get("/menu-item/{menu_item_id}")
@limiter.limit("60/minute")
def get_menu_item_reviews(
    request: Request,
    menu_item_id: int,
    reviews: ReviewServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    rows, total = reviews.list_for_menu_item(menu_item_id, page=page, limit=limit)
    return paginated_response(_serialize(rows), total, page=page, limit=limit)


@router.post("/{review_id}/helpful")
def mark_helpful(review_id: int, reviews: ReviewServiceDep, current_user: CurrentUser):
    """Toggle the caller's helpful mark."""
    marked, count = reviews.toggle_helpful(review_id, current_user.user_id)
    return {"helpful": marked, "count": count}


@router.post("/{review_id}/report")
def report_review(review_id: int, reviews: ReviewServiceDep, current_user: CurrentUser):
    reviews.report(review_id, current_user.user_id)
    return {"success": True}


@router.post("/{review_id}/response", response_model=ReviewOut)
def respond_to_review(
    review_id: int,
    body: ReviewReply,
    reviews: ReviewServiceDep,
    current_user: RequireRestaurantOwner,
):
    return reviews.respond(review_id, current_user, body.text)
