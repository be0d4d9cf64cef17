"""Apply verified Polar webhook events to the local subscription mirror."""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.metrics import WEBHOOK_EVENTS
from app.models.billing import Subscription, WebhookEvent
from app.models.user import User
from app.services.billing.subscriptions import (
    Subscriptions,
    subscription_fields_from_polar,
)
from app.services.common import ensure_aware, parse_timestamp

logger = logging.getLogger(__name__)


# ── User resolution ──────────────────────────────────────


class UserResolver(abc.ABC):
    """Maps a billing customer email onto a local user identity."""

    @abc.abstractmethod
    def resolve(self, db: Session, email: str | None) -> str | None:
        raise NotImplementedError


class EmailUserResolver(UserResolver):
    """Exact email match, first matching user wins."""

    def __init__(self, case_insensitive: bool = False) -> None:
        self.case_insensitive = case_insensitive

    def resolve(self, db: Session, email: str | None) -> str | None:
        if not email:
            return None
        stmt = select(User)
        if self.case_insensitive:
            stmt = stmt.where(func.lower(User.email) == email.lower())
        else:
            stmt = stmt.where(User.email == email)
        user = db.scalars(stmt.order_by(User.created_at).limit(1)).first()
        if user is None:
            logger.info("No local user found for customer email %s", email)
            return None
        return user.token_identifier


def build_user_resolver() -> UserResolver:
    return EmailUserResolver(
        case_insensitive=settings.polar_email_match_case_insensitive
    )


# ── Event log ────────────────────────────────────────────


class WebhookEvents:
    @staticmethod
    def record(db: Session, event_type: str, data: dict[str, Any]) -> WebhookEvent:
        """Stage an event log row in the caller's transaction."""
        item = WebhookEvent(
            type=event_type,
            polar_event_id=data.get("id"),
            created_at=data.get("created_at"),
            modified_at=data.get("modified_at") or data.get("created_at"),
            data=data,
        )
        db.add(item)
        return item

    @staticmethod
    def list(
        db: Session,
        event_type: str | None,
        polar_event_id: str | None,
        limit: int,
        offset: int,
    ) -> list[WebhookEvent]:
        stmt = select(WebhookEvent)
        if event_type:
            stmt = stmt.where(WebhookEvent.type == event_type)
        if polar_event_id:
            stmt = stmt.where(WebhookEvent.polar_event_id == polar_event_id)
        stmt = stmt.order_by(WebhookEvent.received_at.desc()).limit(limit).offset(offset)
        return list(db.scalars(stmt).all())


webhook_events = WebhookEvents()


# ── Reconciler ───────────────────────────────────────────


class EventReconciler:
    """Dispatches one webhook event to its per-type handler.

    The raw event is always appended to the event log first; the log row
    and any subscription change commit together. Handlers return the
    outcome label used for logging and metrics.
    """

    NO_OP_EVENTS = frozenset({"order.created"})

    def __init__(
        self,
        user_resolver: UserResolver | None = None,
        reject_stale_events: bool | None = None,
    ) -> None:
        self.user_resolver = user_resolver or build_user_resolver()
        self.reject_stale_events = (
            settings.polar_reject_stale_events
            if reject_stale_events is None
            else reject_stale_events
        )
        self._handlers: dict[str, Callable[[Session, dict[str, Any]], str]] = {
            "subscription.created": self._on_created,
            "subscription.updated": self._on_updated,
            "subscription.active": self._on_active,
            "subscription.canceled": self._on_canceled,
            "subscription.uncanceled": self._on_uncanceled,
            "subscription.revoked": self._on_revoked,
        }

    def handle_event(self, db: Session, body: dict[str, Any]) -> str:
        event_type = str(body.get("type") or "")
        data = body.get("data")
        if not isinstance(data, dict):
            raise ValueError("Webhook payload has no data object")
        try:
            webhook_events.record(db, event_type, data)
            handler = self._handlers.get(event_type)
            if handler is not None:
                outcome = handler(db, data)
            elif event_type in self.NO_OP_EVENTS:
                outcome = "ignored"
            else:
                logger.info(
                    "Unhandled webhook event type: %s",
                    event_type,
                    extra={"event_type": event_type},
                )
                outcome = "unhandled"
            db.commit()
        except Exception:
            db.rollback()
            WEBHOOK_EVENTS.labels(event_type, "error").inc()
            raise
        WEBHOOK_EVENTS.labels(event_type, outcome).inc()
        logger.info(
            "Webhook event reconciled: %s",
            outcome,
            extra={"event_type": event_type, "polar_id": data.get("id")},
        )
        return outcome

    # ── Handlers ─────────────────────────────────────────

    def _on_created(self, db: Session, data: dict[str, Any]) -> str:
        fields = subscription_fields_from_polar(data)
        if not fields["user_id"]:
            fields["user_id"] = self.user_resolver.resolve(db, fields["customer_email"])

        existing = Subscriptions.get_by_polar_id(db, fields["polar_id"])
        if existing is not None:
            # Already mirrored by a sync or an earlier delivery; only fill blanks.
            changed = False
            if not existing.user_id and fields["user_id"]:
                existing.user_id = fields["user_id"]
                changed = True
            if not existing.customer_email and fields["customer_email"]:
                existing.customer_email = fields["customer_email"]
                changed = True
            return "backfilled" if changed else "duplicate"

        db.add(Subscription(**fields))
        db.flush()
        if not fields["user_id"]:
            logger.warning(
                "Created orphaned subscription",
                extra={"polar_id": fields["polar_id"]},
            )
        return "created"

    def _load_for_patch(
        self, db: Session, data: dict[str, Any]
    ) -> Subscription | None:
        polar_id = data.get("id")
        subscription = Subscriptions.get_by_polar_id(db, polar_id) if polar_id else None
        if subscription is None:
            logger.info(
                "No local subscription for event, skipping",
                extra={"polar_id": polar_id},
            )
            return None
        incoming = parse_timestamp(data.get("modified_at"))
        stored = ensure_aware(subscription.provider_modified_at)
        if self.reject_stale_events and incoming and stored and incoming < stored:
            logger.warning(
                "Skipping stale event modified at %s (stored %s)",
                incoming.isoformat(),
                stored.isoformat(),
                extra={"polar_id": polar_id},
            )
            return None
        if incoming:
            subscription.provider_modified_at = incoming
        return subscription

    def _on_updated(self, db: Session, data: dict[str, Any]) -> str:
        subscription = self._load_for_patch(db, data)
        if subscription is None:
            return "ignored"
        subscription.amount = data.get("amount")
        subscription.status = data.get("status")
        subscription.current_period_start = parse_timestamp(
            data.get("current_period_start")
        )
        subscription.current_period_end = parse_timestamp(
            data.get("current_period_end")
        )
        subscription.cancel_at_period_end = data.get("cancel_at_period_end")
        subscription.metadata_ = data.get("metadata") or {}
        subscription.custom_field_data = data.get("custom_field_data") or {}
        return "updated"

    def _on_active(self, db: Session, data: dict[str, Any]) -> str:
        subscription = self._load_for_patch(db, data)
        if subscription is None:
            return "ignored"
        subscription.status = data.get("status")
        subscription.started_at = parse_timestamp(data.get("started_at"))
        return "updated"

    def _on_canceled(self, db: Session, data: dict[str, Any]) -> str:
        subscription = self._load_for_patch(db, data)
        if subscription is None:
            return "ignored"
        subscription.status = data.get("status")
        subscription.canceled_at = parse_timestamp(data.get("canceled_at"))
        subscription.customer_cancellation_reason = (
            data.get("customer_cancellation_reason") or None
        )
        subscription.customer_cancellation_comment = (
            data.get("customer_cancellation_comment") or None
        )
        return "updated"

    def _on_uncanceled(self, db: Session, data: dict[str, Any]) -> str:
        subscription = self._load_for_patch(db, data)
        if subscription is None:
            return "ignored"
        subscription.status = data.get("status")
        subscription.cancel_at_period_end = False
        subscription.canceled_at = None
        subscription.customer_cancellation_reason = None
        subscription.customer_cancellation_comment = None
        return "updated"

    def _on_revoked(self, db: Session, data: dict[str, Any]) -> str:
        subscription = self._load_for_patch(db, data)
        if subscription is None:
            return "ignored"
        subscription.status = "revoked"
        subscription.ended_at = parse_timestamp(data.get("ended_at"))
        return "updated"
