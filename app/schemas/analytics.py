from pydantic import BaseModel


class SubscriptionAnalytics(BaseModel):
    total_subscriptions: int
    status_counts: dict[str, int]
    total_revenue: int
    active_revenue: int
    new_subscriptions: int
    canceled_subscriptions: int
    revenue_by_interval: dict[str, int]
    churn_rate: float


class ChurnAnalysis(BaseModel):
    churn_rate: float
    growth_rate: float
    active_at_start: int
    canceled_in_period: int
    new_in_period: int
    net_growth: int
    cancellation_reasons: dict[str, int]
    lost_revenue: int
    gained_revenue: int


class RevenuePoint(BaseModel):
    date: str
    revenue: int
    subscriptions: int
