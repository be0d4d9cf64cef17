from app.services.billing.analytics import (
    SubscriptionAnalytics,
    subscription_analytics,
)
from app.services.billing.checkout import Checkouts, checkouts
from app.services.billing.products import Products, products
from app.services.billing.subscriptions import Subscriptions, subscriptions
from app.services.billing.webhooks import (
    EmailUserResolver,
    EventReconciler,
    UserResolver,
    WebhookEvents,
    webhook_events,
)

__all__ = [
    "Checkouts",
    "EmailUserResolver",
    "EventReconciler",
    "Products",
    "SubscriptionAnalytics",
    "Subscriptions",
    "UserResolver",
    "WebhookEvents",
    "checkouts",
    "products",
    "subscription_analytics",
    "subscriptions",
    "webhook_events",
]
