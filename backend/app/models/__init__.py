"""SQLAlchemy models."""

from app.models.user import User
from app.models.restaurant import Restaurant
from app.models.menu_item import MenuItem
from app.models.promo import Promo, DiscountType
from app.models.order import Order, OrderStatus, ORDER_TRANSITIONS
from app.models.group_order import GroupOrder, GroupParticipant, GroupOrderStatus
from app.models.loyalty import (
    LoyaltyAccount,
    LoyaltyTransaction,
    LoyaltyReferral,
    LoyaltyReward,
    LoyaltyTier,
    TransactionType,
    RewardStatus,
)
from app.models.notification import Notification, NotificationPriority
from app.models.review import Review
from app.models.favorite import Favorite, FavoriteType

__all__ = [
    "User",
    "Restaurant",
    "MenuItem",
    "Promo",
    "DiscountType",
    "Order",
    "OrderStatus",
    "ORDER_TRANSITIONS",
    "GroupOrder",
    "GroupParticipant",
    "GroupOrderStatus",
    "LoyaltyAccount",
    "LoyaltyTransaction",
    "LoyaltyReferral",
    "LoyaltyReward",
    "LoyaltyTier",
    "TransactionType",
    "RewardStatus",
    "Notification",
    "NotificationPriority",
    "Review",
    "Favorite",
    "FavoriteType",
]
