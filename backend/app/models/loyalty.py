"""Loyalty ledger models.

One ``LoyaltyAccount`` per user holds the derived balances; every change to
them is mirrored by an append-only ``LoyaltyTransaction`` row.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, TimestampMixin
from app.models.validators import non_negative


class LoyaltyTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class TransactionType(str, Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    BONUS = "bonus"


class RewardStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


class LoyaltyAccount(Base, TimestampMixin):
    __tablename__ = "loyalty_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)

    points_current: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_lifetime: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_pending: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tier: Mapped[str] = mapped_column(String(20), default=LoyaltyTier.BRONZE.value, nullable=False)
    points_to_next: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    tier_benefits: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    streak_current: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    streak_longest: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_order_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    referral_code: Mapped[str] = mapped_column(String(11), unique=True, index=True, nullable=False)
    referral_total_rewards: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    transactions: Mapped[List["LoyaltyTransaction"]] = relationship(
        back_populates="account",
        order_by="LoyaltyTransaction.id",
        cascade="all, delete-orphan",
    )
    referrals: Mapped[List["LoyaltyReferral"]] = relationship(
        back_populates="referrer", cascade="all, delete-orphan"
    )
    rewards: Mapped[List["LoyaltyReward"]] = relationship(
        back_populates="account",
        order_by="LoyaltyReward.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("points_current", "points_lifetime", "points_pending")
    def _validate_points(self, key, value):
        return non_negative(key, value)


class LoyaltyTransaction(Base):
    """Ledger entry. ``source`` is the award kind (order_complete, review,
    referral, tier_upgrade, streak_bonus, ...) and together with
    ``order_reference`` makes repeated awards detectable."""

    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        UniqueConstraint("account_id", "source", "order_reference", name="uq_loyalty_award"),
        Index("ix_loyalty_tx_expiry", "type", "expired", "expiry_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("loyalty_accounts.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(40), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    order_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expired: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    account: Mapped[LoyaltyAccount] = relationship(back_populates="transactions")


class LoyaltyReferral(Base):
    __tablename__ = "loyalty_referrals"
    __table_args__ = (
        UniqueConstraint("referrer_account_id", "referred_user_id", name="uq_loyalty_referral"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    referrer_account_id: Mapped[int] = mapped_column(
        ForeignKey("loyalty_accounts.id"), nullable=False, index=True
    )
    referred_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    referrer: Mapped[LoyaltyAccount] = relationship(back_populates="referrals")


class LoyaltyReward(Base):
    """A reward bought with points; ``code`` is what the customer presents."""

    __tablename__ = "loyalty_rewards"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("loyalty_accounts.id"), nullable=False, index=True
    )
    reward_ref: Mapped[str] = mapped_column(String(50), nullable=False)
    code: Mapped[str] = mapped_column(String(13), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=RewardStatus.ACTIVE.value, nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    account: Mapped[LoyaltyAccount] = relationship(back_populates="rewards")
