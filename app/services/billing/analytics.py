"""Subscription revenue and churn figures for the admin dashboard."""

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.billing import Subscription
from app.services.common import ensure_aware
from app.services.permissions import Permission, PermissionGate, permission_gate

SUMMARY_PERIODS = {"week": 7, "month": 30, "year": 365}
CHURN_PERIODS = {"month": 30, "quarter": 90, "year": 365}
# (days covered, number of buckets)
REVENUE_PERIODS = {"7d": (7, 7), "30d": (30, 30), "90d": (90, 90), "1y": (365, 12)}


def _amount(subscription: Subscription) -> int:
    return subscription.amount or 0


class SubscriptionAnalytics:
    def __init__(
        self,
        gate: PermissionGate | None = None,
        clock=lambda: datetime.now(UTC),
    ) -> None:
        self.gate = gate or permission_gate
        self.clock = clock

    def _all(self, db: Session) -> list[Subscription]:
        return list(db.scalars(select(Subscription)).all())

    def summary(self, db: Session, admin_id: str, period: str = "month") -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_analytics)
        if period not in SUMMARY_PERIODS:
            raise HTTPException(status_code=400, detail="Invalid period")
        period_start = self.clock() - timedelta(days=SUMMARY_PERIODS[period])
        subs = self._all(db)

        status_counts: dict[str, int] = {}
        for sub in subs:
            key = sub.status or "unknown"
            status_counts[key] = status_counts.get(key, 0) + 1
        active = [s for s in subs if s.status == "active"]
        started_before = [
            s for s in subs if s.started_at and ensure_aware(s.started_at) <= period_start
        ]
        canceled_in_period = [
            s for s in subs if s.canceled_at and ensure_aware(s.canceled_at) > period_start
        ]
        new_in_period = [
            s for s in subs if s.started_at and ensure_aware(s.started_at) > period_start
        ]
        churn_rate = (
            len(canceled_in_period) / len(started_before) * 100 if started_before else 0.0
        )
        return {
            "total_subscriptions": len(subs),
            "status_counts": status_counts,
            "total_revenue": sum(_amount(s) for s in subs),
            "active_revenue": sum(_amount(s) for s in active),
            "new_subscriptions": len(new_in_period),
            "canceled_subscriptions": len(canceled_in_period),
            "revenue_by_interval": {
                "monthly": sum(_amount(s) for s in active if s.interval == "month"),
                "yearly": sum(_amount(s) for s in active if s.interval == "year"),
            },
            "churn_rate": round(churn_rate, 2),
        }

    def churn(self, db: Session, admin_id: str, period: str = "month") -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_analytics)
        if period not in CHURN_PERIODS:
            raise HTTPException(status_code=400, detail="Invalid period")
        now = self.clock()
        period_start = now - timedelta(days=CHURN_PERIODS[period])
        active_at_start = []
        canceled = []
        new = []
        for sub in self._all(db):
            started = ensure_aware(sub.started_at)
            canceled_at = ensure_aware(sub.canceled_at)
            if started and started <= period_start:
                if not canceled_at or canceled_at > period_start:
                    active_at_start.append(sub)
                if canceled_at and period_start < canceled_at <= now:
                    canceled.append(sub)
            elif started and period_start < started <= now:
                new.append(sub)

        reasons: dict[str, int] = {}
        for sub in canceled:
            reason = sub.customer_cancellation_reason or "unknown"
            reasons[reason] = reasons.get(reason, 0) + 1
        base = len(active_at_start)
        return {
            "churn_rate": round(len(canceled) / base * 100, 2) if base else 0.0,
            "growth_rate": round(len(new) / base * 100, 2) if base else 0.0,
            "active_at_start": base,
            "canceled_in_period": len(canceled),
            "new_in_period": len(new),
            "net_growth": len(new) - len(canceled),
            "cancellation_reasons": reasons,
            "lost_revenue": sum(_amount(s) for s in canceled),
            "gained_revenue": sum(_amount(s) for s in new),
        }

    def revenue(self, db: Session, admin_id: str, period: str = "30d") -> list[dict[str, Any]]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_analytics)
        if period not in REVENUE_PERIODS:
            raise HTTPException(status_code=400, detail="Invalid period")
        days, buckets = REVENUE_PERIODS[period]
        span = timedelta(days=days)
        start = self.clock() - span
        step = span / buckets
        active = [
            (ensure_aware(s.started_at), _amount(s))
            for s in db.scalars(
                select(Subscription).where(Subscription.status == "active")
            ).all()
            if s.started_at and ensure_aware(s.started_at) >= start
        ]
        end = start + span
        series = []
        for i in range(buckets):
            bucket_start = start + step * i
            last = i == buckets - 1
            bucket_end = end if last else bucket_start + step
            in_bucket = [
                amount
                for started, amount in active
                if bucket_start <= started < bucket_end or (last and started == end)
            ]
            series.append(
                {
                    "date": bucket_start.date().isoformat(),
                    "revenue": sum(in_bucket),
                    "subscriptions": len(in_bucket),
                }
            )
        return series


subscription_analytics = SubscriptionAnalytics()
