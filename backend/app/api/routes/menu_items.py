"""Menu item API routes."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import func, or_, select

from app.core.rate_limit import limiter
from app.core.rbac import RequireRestaurantOwner, TokenData
from app.core.responses import list_response, page_offset, paginated_response
from app.db.session import DbSession
from app.models.menu_item import MenuItem
from app.models.restaurant import Restaurant
from app.schemas.menu_item import MenuItemCreate, MenuItemResponse, MenuItemUpdate

router = APIRouter()

MENU_SORTS = {
    "newest": (MenuItem.created_at.desc(), MenuItem.id.desc()),
    "price_low": (MenuItem.price.asc(), MenuItem.id.asc()),
    "price_high": (MenuItem.price.desc(), MenuItem.id.asc()),
    "rating": (MenuItem.rating_average.desc(), MenuItem.rating_count.desc(), MenuItem.id.asc()),
}


def _serialize(rows) -> list:
    return [MenuItemResponse.model_validate(r).model_dump(mode="json") for r in rows]


def _owned_restaurant(db: DbSession, restaurant_id: int, user: TokenData) -> Restaurant:
    restaurant = db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    if not user.is_admin and restaurant.owner_id != user.user_id:
        raise HTTPException(status_code=403, detail="Not your restaurant")
    return restaurant


@router.get("/")
@limiter.limit("60/minute")
def list_menu_items(
    request: Request,
    db: DbSession,
    restaurant_id: Optional[int] = None,
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    available: Optional[bool] = None,
    sort_by: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Browse dishes with filters."""
    if sort_by not in MENU_SORTS:
        raise HTTPException(status_code=422, detail=f"Unknown sort: {sort_by}")

    filters = []
    if restaurant_id is not None:
        filters.append(MenuItem.restaurant_id == restaurant_id)
    if category:
        filters.append(func.lower(MenuItem.category) == category.lower())
    if available is not None:
        filters.append(MenuItem.available == available)
    if min_price is not None:
        filters.append(MenuItem.price >= min_price)
    if max_price is not None:
        filters.append(MenuItem.price <= max_price)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))

    total = db.scalar(select(func.count(MenuItem.id)).where(*filters))
    rows = db.scalars(
        select(MenuItem).where(*filters).order_by(*MENU_SORTS[sort_by])
        .offset(page_offset(page, limit)).limit(limit)
    ).all()
    return paginated_response(_serialize(rows), total, page=page, limit=limit)


@router.get("/popular")
@limiter.limit("60/minute")
def popular_menu_items(request: Request, db: DbSession, limit: int = Query(10, ge=1, le=50)):
    """Best-reviewed available dishes."""
    rows = db.scalars(
        select(MenuItem)
        .where(MenuItem.available == True)  # noqa: E712
        .order_by(MenuItem.rating_count.desc(), MenuItem.rating_average.desc(), MenuItem.id.asc())
        .limit(limit)
    ).all()
    return list_response(_serialize(rows))


@router.get("/{menu_item_id}", response_model=MenuItemResponse)
@limiter.limit("60/minute")
def get_menu_item(request: Request, menu_item_id: int, db: DbSession):
    item = db.get(MenuItem, menu_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item


@router.post("/", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_menu_item(
    request: Request,
    body: MenuItemCreate,
    db: DbSession,
    current_user: RequireRestaurantOwner,
):
    _owned_restaurant(db, body.restaurant_id, current_user)
    item = MenuItem(
        restaurant_id=body.restaurant_id,
        name=body.name,
        description=body.description,
        price=body.price,
        category=body.category,
        image=body.image,
        tags=list(body.tags),
        customizations=[c.model_dump(mode="json") for c in body.customizations],
        available=body.available,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@router.put("/{menu_item_id}", response_model=MenuItemResponse)
@limiter.limit("30/minute")
def update_menu_item(
    request: Request,
    menu_item_id: int,
    body: MenuItemUpdate,
    db: DbSession,
    current_user: RequireRestaurantOwner,
):
    """Edit a dish. Ratings are not editable here."""
    item = db.get(MenuItem, menu_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    _owned_restaurant(db, item.restaurant_id, current_user)

    # Only the optional text fields can be cleared with null.
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True, mode="json").items()
        if value is not None or key in ("description", "image")
    }
    if "price" in changes:
        changes["price"] = body.price
    for key, value in changes.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item
