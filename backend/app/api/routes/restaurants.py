"""Restaurant API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import func, select

from app.core.rate_limit import limiter
from app.core.rbac import RequireRestaurantOwner, UserRole
from app.core.responses import page_offset, paginated_response
from app.db.session import DbSession
from app.models.restaurant import Restaurant
from app.schemas.restaurant import RestaurantCreate, RestaurantResponse

router = APIRouter()


@router.post("/", response_model=RestaurantResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_restaurant(
    request: Request,
    body: RestaurantCreate,
    db: DbSession,
    current_user: RequireRestaurantOwner,
):
    """Register a restaurant. Owners always own what they create."""
    owner_id = current_user.user_id
    if current_user.role == UserRole.ADMIN and body.owner_id is not None:
        owner_id = body.owner_id

    restaurant = Restaurant(
        name=body.name,
        description=body.description,
        cuisine=body.cuisine,
        phone=body.phone,
        address=body.address.model_dump() if body.address else None,
        delivery_fee=body.delivery_fee,
        minimum_order=body.minimum_order,
        owner_id=owner_id,
    )
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)
    return restaurant


@router.get("/")
@limiter.limit("60/minute")
def list_restaurants(
    request: Request,
    db: DbSession,
    cuisine: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List active restaurants."""
    filters = [Restaurant.is_active == True]  # noqa: E712
    if cuisine:
        filters.append(Restaurant.cuisine == cuisine)

    total = db.scalar(select(func.count(Restaurant.id)).where(*filters))
    rows = db.scalars(
        select(Restaurant).where(*filters).order_by(Restaurant.name)
        .offset(page_offset(page, limit)).limit(limit)
    ).all()
    items = [RestaurantResponse.model_validate(r).model_dump(mode="json") for r in rows]
    return paginated_response(items, total, page=page, limit=limit)


@router.get("/{restaurant_id}", response_model=RestaurantResponse)
@limiter.limit("60/minute")
def get_restaurant(request: Request, restaurant_id: int, db: DbSession):
    restaurant = db.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant
