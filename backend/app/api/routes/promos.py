"""Promo code routes."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.core.clock import utcnow
from app.core.money import quantize_money
from app.core.rate_limit import limiter
from app.core.rbac import RequireAdmin
from app.core.responses import list_response
from app.db.session import DbSession
from app.schemas.promo import (
    PromoAdminResponse,
    PromoCreate,
    PromoResponse,
    PromoValidationResponse,
)
from app.services.promo_service import PromoEvaluator

router = APIRouter()


@router.get("/validate", response_model=PromoValidationResponse)
@limiter.limit("30/minute")
def validate_promo(
    request: Request,
    db: DbSession,
    code: str = Query(..., min_length=1, max_length=50),
    subtotal: Optional[Decimal] = Query(None, ge=0),
):
    """
    Check a promo code.

    With ``subtotal`` the response also carries the discount that code would
    give. Nothing is redeemed.
    """
    promo = PromoEvaluator(db).lookup_live(code, utcnow())
    discount = None
    if subtotal is not None:
        discount = quantize_money(PromoEvaluator.apply(promo, subtotal))
    return PromoValidationResponse(
        valid=True,
        promo=PromoResponse.model_validate(promo),
        discount=discount,
    )


@router.post("/", response_model=PromoAdminResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_promo(request: Request, body: PromoCreate, db: DbSession, current_user: RequireAdmin):
    return PromoEvaluator(db).create(body.model_dump())


@router.get("/")
@limiter.limit("60/minute")
def list_promos(
    request: Request,
    db: DbSession,
    current_user: RequireAdmin,
    active_only: bool = False,
):
    promos = PromoEvaluator(db).list_promos(active_only=active_only)
    return list_response([PromoAdminResponse.model_validate(p).model_dump(mode="json") for p in promos])
