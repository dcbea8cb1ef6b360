# Services module

from app.services.pricing_service import (
    PricingEngine,
    LineItem,
    Customization,
    Fees,
    OrderTotals,
)
from app.services.promo_service import PromoEvaluator
from app.services.group_order_service import GroupOrderAggregator
from app.services.loyalty_service import LoyaltyLedger
from app.services.notification_service import NotificationDispatcher
from app.services.order_service import OrderService
