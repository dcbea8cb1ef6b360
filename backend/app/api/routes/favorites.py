"""Favorites API routes: saved restaurants and dishes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.favorite import Favorite, FavoriteType
from app.models.menu_item import MenuItem
from app.models.restaurant import Restaurant
from app.schemas.favorite import FavoriteCreate, FavoriteOut, FavoriteTarget, FavoriteUpdate

router = APIRouter()


def _find(db: DbSession, user_id: int, target: FavoriteTarget) -> Optional[Favorite]:
    return db.scalar(
        select(Favorite).where(
            Favorite.user_id == user_id,
            Favorite.type == target.type.value,
            Favorite.target_id == target.target_id,
        )
    )


def _owned(db: DbSession, favorite_id: int, user_id: int) -> Favorite:
    favorite = db.get(Favorite, favorite_id)
    # Someone else's favorite looks the same as a missing one.
    if favorite is None or favorite.user_id != user_id:
        raise HTTPException(status_code=404, detail="Favorite not found")
    return favorite


@router.get("/")
def get_favorites(
    db: DbSession,
    current_user: CurrentUser,
    favorite_type: Optional[FavoriteType] = Query(None, alias="type"),
):
    """Saved items, newest first."""
    filters = [Favorite.user_id == current_user.user_id]
    if favorite_type:
        filters.append(Favorite.type == favorite_type.value)
    rows = db.scalars(
        select(Favorite).where(*filters).order_by(Favorite.created_at.desc(), Favorite.id.desc())
    ).all()
    return list_response([FavoriteOut.model_validate(f).model_dump(mode="json") for f in rows])


@router.get("/check")
def check_favorite(
    db: DbSession,
    current_user: CurrentUser,
    favorite_type: FavoriteType = Query(alias="type"),
    restaurant_id: Optional[int] = None,
    menu_item_id: Optional[int] = None,
):
    try:
        target = FavoriteTarget(type=favorite_type, restaurant_id=restaurant_id, menu_item_id=menu_item_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    favorite = _find(db, current_user.user_id, target)
    return {"is_favorite": favorite is not None, "favorite_id": favorite.id if favorite else None}


@router.post("/", response_model=FavoriteOut, status_code=status.HTTP_201_CREATED)
def add_favorite(body: FavoriteCreate, db: DbSession, current_user: CurrentUser):
    if body.type == FavoriteType.RESTAURANT:
        if db.get(Restaurant, body.restaurant_id) is None:
            raise HTTPException(status_code=404, detail="Restaurant not found")
    elif db.get(MenuItem, body.menu_item_id) is None:
        raise HTTPException(status_code=404, detail="Menu item not found")

    if _find(db, current_user.user_id, body) is not None:
        raise HTTPException(status_code=409, detail="Item already in favorites")

    favorite = Favorite(
        user_id=current_user.user_id,
        type=body.type.value,
        target_id=body.target_id,
        restaurant_id=body.restaurant_id if body.type == FavoriteType.RESTAURANT else None,
        menu_item_id=body.menu_item_id if body.type == FavoriteType.MENU_ITEM else None,
        notes=body.notes,
        tags=list(body.tags),
    )
    db.add(favorite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Item already in favorites")
    db.refresh(favorite)
    return favorite


@router.put("/{favorite_id}", response_model=FavoriteOut)
def update_favorite(favorite_id: int, body: FavoriteUpdate, db: DbSession, current_user: CurrentUser):
    favorite = _owned(db, favorite_id, current_user.user_id)
    if "notes" in body.model_fields_set:
        favorite.notes = body.notes
    if body.tags is not None:
        favorite.tags = list(body.tags)
    db.commit()
    db.refresh(favorite)
    return favorite


@router.delete("/{favorite_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_favorite(favorite_id: int, db: DbSession, current_user: CurrentUser):
    favorite = _owned(db, favorite_id, current_user.user_id)
    db.delete(favorite)
    db.commit()
