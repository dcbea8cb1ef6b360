"""Loyalty program routes: balance, history, redemption, referrals."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from app.api.deps import LedgerDep
from app.core.rate_limit import limiter, user_limiter
from app.core.rbac import CurrentUser, RequireAdmin
from app.core.responses import paginated_response
from app.models.loyalty import TransactionType
from app.schemas.loyalty import RedeemRequest, ReferralRequest, RewardOut, TransactionOut
from app.services.loyalty_service import loyalty_rules

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status")
@limiter.limit("60/minute")
def get_loyalty_status(request: Request, ledger: LedgerDep, current_user: CurrentUser):
    """Points, tier, streaks and referral stats. Opens an account on first use."""
    return ledger.status(current_user.user_id)


@router.get("/transactions")
@limiter.limit("60/minute")
def get_transactions(
    request: Request,
    ledger: LedgerDep,
    current_user: CurrentUser,
    tx_type: Optional[TransactionType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    rows, total = ledger.transactions(
        current_user.user_id,
        tx_type=tx_type.value if tx_type else None,
        page=page,
        limit=limit,
    )
    items = [TransactionOut.model_validate(t).model_dump(mode="json") for t in rows]
    return paginated_response(items, total, page=page, limit=limit)


@router.post("/redeem")
@user_limiter.limit("10/minute")
def redeem_points(request: Request, body: RedeemRequest, ledger: LedgerDep, current_user: CurrentUser):
    """Spend points, either a raw amount or on a catalog reward."""
    if body.reward_id is not None:
        account, reward = ledger.redeem_catalog_reward(current_user.user_id, body.reward_id)
    else:
        account, reward = ledger.redeem(
            current_user.user_id,
            body.points,
            description=body.description,
        )
    return {
        "success": True,
        "points_remaining": account.points_current,
        "reward": RewardOut.model_validate(reward).model_dump(mode="json") if reward else None,
    }


@router.post("/referral")
@user_limiter.limit("5/minute")
def apply_referral(request: Request, body: ReferralRequest, ledger: LedgerDep, current_user: CurrentUser):
    """Credit the owner of ``referral_code`` for referring the caller."""
    referrer = ledger.process_referral_code(body.referral_code, current_user.user_id)
    return {"success": True, "credited": referrer is not None}


@router.get("/rewards")
@limiter.limit("60/minute")
def get_available_rewards(request: Request, ledger: LedgerDep, current_user: CurrentUser):
    return ledger.available_rewards(current_user.user_id)


@router.get("/leaderboard")
@limiter.limit("30/minute")
def get_leaderboard(
    request: Request,
    ledger: LedgerDep,
    current_user: CurrentUser,
    limit: int = Query(10, ge=1, le=100),
):
    return ledger.leaderboard(current_user.user_id, limit=limit)


@router.get("/rules")
@limiter.limit("60/minute")
def get_rules(request: Request):
    return loyalty_rules()


@router.post("/expire-sweep")
@limiter.limit("5/minute")
def run_expire_sweep(request: Request, ledger: LedgerDep, current_user: RequireAdmin):
    """Run the points expiry sweep now instead of waiting for the scheduler."""
    result = ledger.expire_sweep()
    logger.info(f"Manual expiry sweep by user {current_user.user_id}: {result}")
    return result
