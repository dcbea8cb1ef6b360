"""
Loyalty points ledger.

Balances live on ``LoyaltyAccount``; every change is also appended to
``LoyaltyTransaction``. All mutations go through ``run_serialized`` keyed on
the user, so an award, a redemption and the expiry sweep never interleave on
the same account.

Rules:
- Awards are multiplied by the account's tier multiplier and rounded down.
  Referral credits and tier/streak bonuses are flat.
- Tier is derived from lifetime points and never goes down. Reaching a new
  tier adds that tier's bonus to current points (not lifetime).
- Streaks count consecutive calendar days (settings.timezone) with a
  completed order; 7, 30 and 365 day streaks pay a one-off bonus.
- Earned points expire ``points_expiry_days`` after they were awarded.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import ensure_aware, local_date, utcnow
from app.core.config import settings
from app.core.exceptions import (
    ConcurrencyConflictError,
    InsufficientPointsError,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.core.locks import run_serialized
from app.models.loyalty import (
    LoyaltyAccount,
    LoyaltyReferral,
    LoyaltyReward,
    LoyaltyTier,
    LoyaltyTransaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

POINTS_RULES = {
    "order_complete": 10,  # base points per order
    "dollar_spent": 1,
    "review": 25,
    "referral": 500,
    "birthday": 100,
}
REFERRAL_SIGNUP_POINTS = POINTS_RULES["referral"] // 2

STREAK_BONUSES = {7: 50, 30: 200, 365: 1000}

TIER_ORDER = [LoyaltyTier.BRONZE, LoyaltyTier.SILVER, LoyaltyTier.GOLD, LoyaltyTier.PLATINUM]

TIER_THRESHOLDS = {
    LoyaltyTier.BRONZE: 0,
    LoyaltyTier.SILVER: 1000,
    LoyaltyTier.GOLD: 5000,
    LoyaltyTier.PLATINUM: 15000,
}

TIER_MULTIPLIERS = {
    LoyaltyTier.BRONZE: Decimal("1.00"),
    LoyaltyTier.SILVER: Decimal("1.05"),
    LoyaltyTier.GOLD: Decimal("1.10"),
    LoyaltyTier.PLATINUM: Decimal("1.15"),
}

TIER_UPGRADE_BONUS = {
    LoyaltyTier.SILVER: 100,
    LoyaltyTier.GOLD: 250,
    LoyaltyTier.PLATINUM: 500,
}

TIER_BENEFITS = {
    LoyaltyTier.BRONZE: ["Points on purchases"],
    LoyaltyTier.SILVER: ["5% bonus points", "Early access to promotions"],
    LoyaltyTier.GOLD: ["10% bonus points", "Free delivery on orders over $20", "Priority support"],
    LoyaltyTier.PLATINUM: [
        "15% bonus points",
        "Free delivery on all orders",
        "Exclusive offers",
        "Personal account manager",
    ],
}

REWARD_VALIDITY_DAYS = 30


@dataclass(frozen=True)
class RewardOption:
    id: str
    name: str
    description: str
    points_cost: int
    tier: LoyaltyTier

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points_cost": self.points_cost,
            "tier": self.tier.value,
        }


REWARDS_CATALOG: Dict[str, RewardOption] = {
    r.id: r
    for r in [
        RewardOption("free_delivery", "Free Delivery", "Free delivery on your next order", 200, LoyaltyTier.BRONZE),
        RewardOption("discount_10", "10% Discount", "10% off your next order", 500, LoyaltyTier.BRONZE),
        RewardOption("discount_15", "15% Discount", "15% off your next order", 750, LoyaltyTier.SILVER),
        RewardOption("free_appetizer", "Free Appetizer", "Free appetizer with any order", 300, LoyaltyTier.SILVER),
        RewardOption("discount_20", "20% Discount", "20% off your next order", 1000, LoyaltyTier.GOLD),
        RewardOption("free_meal", "Free Meal", "Free meal up to $25", 2500, LoyaltyTier.PLATINUM),
    ]
}


def tier_rank(tier: Any) -> int:
    return TIER_ORDER.index(LoyaltyTier(tier))


def tier_for(lifetime_points: int) -> LoyaltyTier:
    """Highest tier whose threshold is <= ``lifetime_points``."""
    current = LoyaltyTier.BRONZE
    for tier in TIER_ORDER:
        if lifetime_points >= TIER_THRESHOLDS[tier]:
            current = tier
    return current


def next_tier(tier: Any) -> Optional[LoyaltyTier]:
    rank = tier_rank(tier)
    return TIER_ORDER[rank + 1] if rank + 1 < len(TIER_ORDER) else None


def points_to_next(tier: Any, lifetime_points: int) -> int:
    upcoming = next_tier(tier)
    if upcoming is None:
        return 0
    return max(0, TIER_THRESHOLDS[upcoming] - lifetime_points)


def order_points(order_total: Decimal) -> int:
    """Base points for a completed order: flat per-order points plus one per whole dollar."""
    dollars = int(Decimal(order_total).to_integral_value(rounding=ROUND_FLOOR))
    return POINTS_RULES["order_complete"] + POINTS_RULES["dollar_spent"] * max(0, dollars)


def _random_code(prefix: str, length: int) -> str:
    chars = string.ascii_uppercase + string.digits
    return prefix + "".join(secrets.choice(chars) for _ in range(length))


def generate_referral_code() -> str:
    return _random_code("REF", 8)


def generate_reward_code() -> str:
    return _random_code("RWD", 10)


@dataclass
class AwardResult:
    account: LoyaltyAccount
    points_awarded: int = 0
    duplicate: bool = False
    tier_before: Optional[str] = None
    tier_after: Optional[str] = None
    bonuses: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def tier_changed(self) -> bool:
        return self.tier_before != self.tier_after


class LoyaltyLedger:
    """Award, redeem, refer and expire loyalty points for users."""

    def __init__(
        self,
        db: Session,
        dispatcher=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.clock = clock

    @staticmethod
    def lock_key(user_id: int) -> str:
        return f"loyalty:{user_id}"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_account(self, user_id: int) -> Optional[LoyaltyAccount]:
        return self.db.scalar(select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id))

    def get_or_create_account(self, user_id: int) -> LoyaltyAccount:
        """Return the user's account, creating it on first access."""
        account = self.find_account(user_id)
        if account is not None:
            return account

        for _ in range(3):
            account = LoyaltyAccount(
                user_id=user_id,
                tier=LoyaltyTier.BRONZE.value,
                tier_benefits=list(TIER_BENEFITS[LoyaltyTier.BRONZE]),
                points_to_next=TIER_THRESHOLDS[LoyaltyTier.SILVER],
                referral_code=generate_referral_code(),
            )
            self.db.add(account)
            try:
                self.db.commit()
            except IntegrityError:
                # Either another request created the account or the code collided.
                self.db.rollback()
                existing = self.find_account(user_id)
                if existing is not None:
                    return existing
                continue
            logger.info(f"Loyalty account created for user {user_id}")
            return account

        raise StateError("Could not create loyalty account", user_id=user_id)

    def _load(self, user_id: int) -> LoyaltyAccount:
        account = self.db.scalar(
            select(LoyaltyAccount)
            .where(LoyaltyAccount.user_id == user_id)
            .with_for_update()
        )
        if account is None:
            raise NotFoundError("Loyalty account not found", user_id=user_id)
        return account

    def _append(
        self,
        account: LoyaltyAccount,
        tx_type: TransactionType,
        source: str,
        points: int,
        description: str,
        order_reference: Optional[str] = None,
        expiry_date: Optional[datetime] = None,
    ) -> LoyaltyTransaction:
        tx = LoyaltyTransaction(
            account_id=account.id,
            type=tx_type.value,
            source=source,
            points=points,
            order_reference=order_reference,
            description=description,
            created_at=self.clock(),
            expiry_date=expiry_date,
        )
        self.db.add(tx)
        return tx

    def _already_awarded(self, account_id: int, source: str, order_reference: str) -> bool:
        return self.db.scalar(
            select(func.count(LoyaltyTransaction.id)).where(
                LoyaltyTransaction.account_id == account_id,
                LoyaltyTransaction.source == source,
                LoyaltyTransaction.order_reference == order_reference,
            )
        ) > 0

    # ------------------------------------------------------------------
    # Award
    # ------------------------------------------------------------------

    def award(
        self,
        user_id: int,
        base_points: int,
        award_type: str,
        order_ref: Optional[str] = None,
        description: Optional[str] = None,
        expiry_days: Optional[int] = None,
    ) -> AwardResult:
        """Credit ``base_points`` (times the tier multiplier) to the user.

        Repeating an award with the same ``award_type`` and ``order_ref`` is a
        no-op and returns a result with ``duplicate=True``.
        """
        if isinstance(base_points, bool) or not isinstance(base_points, int) or base_points < 0:
            raise ValidationError("points must be a non-negative integer", field="points")
        if expiry_days is None:
            expiry_days = settings.points_expiry_days

        self.get_or_create_account(user_id)

        def operation() -> AwardResult:
            account = self._load(user_id)
            if order_ref is not None and self._already_awarded(account.id, award_type, order_ref):
                return AwardResult(account=account, duplicate=True,
                                   tier_before=account.tier, tier_after=account.tier)

            now = self.clock()
            multiplier = TIER_MULTIPLIERS[LoyaltyTier(account.tier)]
            points = int((Decimal(base_points) * multiplier).to_integral_value(rounding=ROUND_FLOOR))

            result = AwardResult(account=account, points_awarded=points, tier_before=account.tier)
            self._append(
                account,
                TransactionType.EARNED,
                award_type,
                points,
                description or f"{award_type} reward",
                order_reference=order_ref,
                expiry_date=now + timedelta(days=expiry_days),
            )
            account.points_current += points
            account.points_lifetime += points

            result.bonuses.extend(self._update_tier(account, order_ref))
            if award_type == "order_complete":
                result.bonuses.extend(self._update_streak(account, now, order_ref))
            result.tier_after = account.tier
            return result

        try:
            result = run_serialized(self.db, self.lock_key(user_id), operation)
        except IntegrityError:
            # Same award committed by another worker between our check and flush.
            logger.info(f"Duplicate {award_type} award for {order_ref} ignored (user {user_id})")
            return AwardResult(account=self._load(user_id), duplicate=True)

        if result.duplicate:
            logger.info(f"Duplicate {award_type} award for {order_ref} ignored (user {user_id})")
            return result

        logger.info(
            f"Awarded {result.points_awarded} points to user {user_id} "
            f"({award_type}, ref={order_ref})"
        )
        self._notify_award(user_id, result)
        return result

    def _notify_award(self, user_id: int, result: AwardResult):
        if self.dispatcher is None:
            return
        account = result.account
        self.dispatcher.notify(user_id, "loyalty_reward", {
            "points": result.points_awarded,
            "total_points": account.points_current,
        })
        if result.tier_changed:
            bonus = TIER_UPGRADE_BONUS.get(LoyaltyTier(result.tier_after), 0)
            self.dispatcher.notify(user_id, "tier_upgrade", {
                "tier": LoyaltyTier(result.tier_after).value.capitalize(),
                "bonus": bonus,
            })

    def _update_tier(self, account: LoyaltyAccount, order_ref: Optional[str]) -> List[Tuple[str, int]]:
        """Move the account to the tier its lifetime points earn. Upward only."""
        bonuses = []
        new_tier = tier_for(account.points_lifetime)

        if tier_rank(new_tier) > tier_rank(account.tier):
            old_tier = account.tier
            account.tier = new_tier.value
            account.tier_benefits = list(TIER_BENEFITS[new_tier])

            # A jump over several tiers pays only the tier reached.
            bonus = TIER_UPGRADE_BONUS.get(new_tier, 0)
            if bonus:
                account.points_current += bonus
                self._append(
                    account,
                    TransactionType.BONUS,
                    f"tier_upgrade:{new_tier.value}",
                    bonus,
                    f"{new_tier.value.capitalize()} tier upgrade bonus",
                    order_reference=order_ref,
                )
                bonuses.append(("tier_upgrade", bonus))
            logger.info(f"User {account.user_id} upgraded {old_tier} -> {new_tier.value}")

        account.points_to_next = points_to_next(account.tier, account.points_lifetime)
        return bonuses

    def _update_streak(
        self, account: LoyaltyAccount, now: datetime, order_ref: Optional[str]
    ) -> List[Tuple[str, int]]:
        bonuses = []
        last = ensure_aware(account.last_order_date)

        if last is None:
            account.streak_current = 1
            account.streak_longest = max(account.streak_longest, 1)
        else:
            days = (local_date(now) - local_date(last)).days
            if days == 1:
                account.streak_current += 1
                account.streak_longest = max(account.streak_longest, account.streak_current)
                bonus = STREAK_BONUSES.get(account.streak_current)
                if bonus:
                    account.points_current += bonus
                    self._append(
                        account,
                        TransactionType.BONUS,
                        f"streak:{account.streak_current}",
                        bonus,
                        f"{account.streak_current} day streak bonus",
                        order_reference=order_ref,
                    )
                    bonuses.append(("streak", bonus))
                    logger.info(
                        f"User {account.user_id} reached a {account.streak_current} day streak"
                    )
            elif days > 1:
                account.streak_current = 1
            # Same day (or clock skew backwards): streak unchanged.

        if last is None or now > last:
            account.last_order_date = now
        return bonuses

    # ------------------------------------------------------------------
    # Redeem
    # ------------------------------------------------------------------

    def redeem(
        self,
        user_id: int,
        points: int,
        reward_ref: Optional[str] = None,
        description: Optional[str] = None,
        reward_expiry: Optional[datetime] = None,
    ) -> Tuple[LoyaltyAccount, Optional[LoyaltyReward]]:
        """Spend ``points``; with ``reward_ref`` also issue a reward code.

        Raises:
            InsufficientPointsError: balance too low. Nothing is changed.
        """
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise ValidationError("points must be a positive integer", field="points")

        self.get_or_create_account(user_id)

        def operation():
            account = self._load(user_id)
            if account.points_current < points:
                raise InsufficientPointsError(points, account.points_current, user_id=user_id)

            account.points_current -= points
            self._append(
                account,
                TransactionType.REDEEMED,
                "redemption",
                -points,
                description or "Points redeemed",
            )

            reward = None
            if reward_ref:
                reward = LoyaltyReward(
                    account_id=account.id,
                    reward_ref=reward_ref,
                    code=generate_reward_code(),
                    points_spent=points,
                    expiry_date=reward_expiry,
                    redeemed_at=self.clock(),
                )
                self.db.add(reward)
            return account, reward

        account, reward = run_serialized(self.db, self.lock_key(user_id), operation)
        logger.info(f"User {user_id} redeemed {points} points (reward={reward_ref})")
        return account, reward

    def redeem_catalog_reward(self, user_id: int, reward_id: str):
        option = REWARDS_CATALOG.get(reward_id)
        if option is None:
            raise NotFoundError("Unknown reward", reward_id=reward_id)

        account = self.get_or_create_account(user_id)
        if tier_rank(account.tier) < tier_rank(option.tier):
            raise StateError(
                f"{option.name} requires {option.tier.value} tier",
                reward_id=reward_id,
                required_tier=option.tier.value,
            )
        return self.redeem(
            user_id,
            option.points_cost,
            reward_ref=option.id,
            description=f"Redeemed: {option.name}",
            reward_expiry=self.clock() + timedelta(days=REWARD_VALIDITY_DAYS),
        )

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------

    def process_referral(self, referrer_id: int, new_user_id: int) -> Optional[LoyaltyAccount]:
        """Credit ``referrer_id`` for bringing in ``new_user_id``.

        Returns the referrer's account, or None when nothing was credited
        (self-referral, or this pair was already processed).
        """
        if referrer_id == new_user_id:
            logger.info(f"Ignoring self-referral by user {referrer_id}")
            return None

        self.get_or_create_account(referrer_id)
        referral_points = POINTS_RULES["referral"]

        def operation():
            account = self._load(referrer_id)
            already = self.db.scalar(
                select(func.count(LoyaltyReferral.id)).where(
                    LoyaltyReferral.referrer_account_id == account.id,
                    LoyaltyReferral.referred_user_id == new_user_id,
                )
            )
            if already:
                return None

            now = self.clock()
            self.db.add(LoyaltyReferral(
                referrer_account_id=account.id,
                referred_user_id=new_user_id,
                points_awarded=referral_points,
                created_at=now,
            ))
            account.points_current += referral_points
            account.points_lifetime += referral_points
            account.referral_total_rewards += referral_points
            self._append(
                account,
                TransactionType.EARNED,
                "referral",
                referral_points,
                "Referral bonus",
                order_reference=f"referral:{new_user_id}",
                expiry_date=now + timedelta(days=settings.points_expiry_days),
            )
            self._update_tier(account, None)
            return account

        try:
            account = run_serialized(self.db, self.lock_key(referrer_id), operation)
        except IntegrityError:
            account = None
        if account is None:
            logger.info(f"Referral of user {new_user_id} by {referrer_id} already processed")
            return None

        logger.info(f"User {referrer_id} credited {referral_points} points for referring {new_user_id}")
        self.award(
            new_user_id,
            REFERRAL_SIGNUP_POINTS,
            "referral_signup",
            order_ref=f"referred:{new_user_id}",
            description="Welcome referral bonus",
        )
        return account

    def process_referral_code(self, code: str, new_user_id: int) -> Optional[LoyaltyAccount]:
        referrer = self.db.scalar(
            select(LoyaltyAccount).where(LoyaltyAccount.referral_code == code.strip().upper())
        )
        if referrer is None:
            raise NotFoundError("Invalid referral code")
        return self.process_referral(referrer.user_id, new_user_id)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Expire earned points past their expiry date.

        Each expired transaction is flagged once, so running the sweep again
        changes nothing. Returns counts for logging.
        """
        now = now or self.clock()
        candidates = self.db.execute(
            select(LoyaltyAccount.id, LoyaltyAccount.user_id)
            .join(LoyaltyTransaction, LoyaltyTransaction.account_id == LoyaltyAccount.id)
            .where(
                LoyaltyTransaction.type == TransactionType.EARNED.value,
                LoyaltyTransaction.expired.is_(False),
                LoyaltyTransaction.expiry_date.is_not(None),
                LoyaltyTransaction.expiry_date < now,
            )
            .distinct()
        ).all()
        self.db.rollback()

        summary = {"accounts": 0, "transactions": 0, "points": 0, "failed": 0}
        for _, user_id in candidates:
            try:
                count, removed = run_serialized(
                    self.db, self.lock_key(user_id), lambda: self._expire_account(user_id, now)
                )
            except ConcurrencyConflictError as e:
                summary["failed"] += 1
                logger.warning(f"Expiry sweep skipped user {user_id}: {e.message}")
                continue
            if count:
                summary["accounts"] += 1
                summary["transactions"] += count
                summary["points"] += removed

        logger.info(
            f"Expiry sweep: {summary['transactions']} transactions, "
            f"{summary['points']} points across {summary['accounts']} accounts"
        )
        return summary

    def _expire_account(self, user_id: int, now: datetime) -> Tuple[int, int]:
        account = self._load(user_id)
        stale = [
            tx for tx in self.db.scalars(
                select(LoyaltyTransaction).where(
                    LoyaltyTransaction.account_id == account.id,
                    LoyaltyTransaction.type == TransactionType.EARNED.value,
                    LoyaltyTransaction.expired.is_(False),
                    LoyaltyTransaction.expiry_date.is_not(None),
                )
            )
            if ensure_aware(tx.expiry_date) < now
        ]
        if not stale:
            return 0, 0

        expired_points = 0
        for tx in stale:
            tx.expired = True
            expired_points += tx.points

        removed = min(expired_points, account.points_current)
        account.points_current -= removed
        self._append(
            account,
            TransactionType.EXPIRED,
            "expiry",
            -removed,
            f"Points expired ({expired_points} earned points past expiry)",
        )
        # Touch the row so the version check covers the sweep even when nothing was removed.
        account.updated_at = now
        return len(stale), removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, user_id: int) -> dict:
        account = self.get_or_create_account(user_id)
        tier = LoyaltyTier(account.tier)
        upcoming = next_tier(tier)
        rewards = [
            {
                "reward_ref": r.reward_ref,
                "code": r.code,
                "status": r.status,
                "expiry_date": r.expiry_date,
                "redeemed_at": r.redeemed_at,
            }
            for r in account.rewards
        ]
        return {
            "user_id": account.user_id,
            "points": {
                "current": account.points_current,
                "lifetime": account.points_lifetime,
                "pending": account.points_pending,
            },
            "tier": {
                "current": tier.value,
                "next": upcoming.value if upcoming else None,
                "points_to_next": account.points_to_next,
                "multiplier": TIER_MULTIPLIERS[tier],
                "benefits": list(account.tier_benefits or []),
            },
            "streaks": {
                "current": account.streak_current,
                "longest": account.streak_longest,
                "last_order_date": ensure_aware(account.last_order_date),
            },
            "referral": {
                "code": account.referral_code,
                "referred_count": len(account.referrals),
                "total_rewards": account.referral_total_rewards,
            },
            "rewards": rewards,
        }

    def transactions(
        self,
        user_id: int,
        tx_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[LoyaltyTransaction], int]:
        """Newest first."""
        account = self.find_account(user_id)
        if account is None:
            raise NotFoundError("Loyalty account not found", user_id=user_id)

        filters = [LoyaltyTransaction.account_id == account.id]
        if tx_type:
            filters.append(LoyaltyTransaction.type == TransactionType(tx_type).value)

        total = self.db.scalar(select(func.count(LoyaltyTransaction.id)).where(*filters))
        rows = self.db.scalars(
            select(LoyaltyTransaction)
            .where(*filters)
            .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), total

    def available_rewards(self, user_id: int) -> dict:
        """Catalog entries the user's tier unlocks and balance covers."""
        account = self.get_or_create_account(user_id)
        rank = tier_rank(account.tier)
        available = [
            option.as_dict()
            for option in REWARDS_CATALOG.values()
            if tier_rank(option.tier) <= rank and option.points_cost <= account.points_current
        ]
        return {
            "available": available,
            "user_points": account.points_current,
            "user_tier": account.tier,
        }

    def leaderboard(self, user_id: int, limit: int = 10) -> dict:
        rows = self.db.execute(
            select(LoyaltyAccount.user_id, LoyaltyAccount.points_lifetime, LoyaltyAccount.tier)
            .order_by(LoyaltyAccount.points_lifetime.desc(), LoyaltyAccount.id)
            .limit(limit)
        ).all()

        me = self.find_account(user_id)
        user_rank = None
        if me is not None:
            higher = self.db.scalar(
                select(func.count(LoyaltyAccount.id)).where(
                    LoyaltyAccount.points_lifetime > me.points_lifetime
                )
            )
            user_rank = higher + 1

        return {
            "leaderboard": [
                {"rank": i, "user_id": r.user_id, "lifetime_points": r.points_lifetime, "tier": r.tier}
                for i, r in enumerate(rows, start=1)
            ],
            "user_rank": user_rank,
            "user_points": me.points_lifetime if me is not None else 0,
        }


def loyalty_rules() -> dict:
    return {
        "points_rules": POINTS_RULES,
        "streak_bonuses": STREAK_BONUSES,
        "tiers": {
            tier.value: {
                "threshold": TIER_THRESHOLDS[tier],
                "multiplier": TIER_MULTIPLIERS[tier],
                "upgrade_bonus": TIER_UPGRADE_BONUS.get(tier, 0),
                "benefits": TIER_BENEFITS[tier],
            }
            for tier in TIER_ORDER
        },
        "points_expiry_days": settings.points_expiry_days,
    }
