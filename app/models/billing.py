import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base, TimestampMixin

# ── Catalog ──────────────────────────────────────────────


class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Empty string marks a product that only exists locally.
    polar_product_id: Mapped[str] = mapped_column(
        String(255), default="", index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(80), default="subscription")
    features: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_by: Mapped[str | None] = mapped_column(String(255))


# ── Subscriptions ────────────────────────────────────────


class Subscription(TimestampMixin, Base):
    """Local mirror of a provider subscription, keyed by ``polar_id``.

    ``status`` is stored as the provider reports it; unknown values are
    kept verbatim. ``user_id`` is null until the owning customer is
    matched to a local user.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("polar_id", name="uq_subscriptions_polar_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    polar_id: Mapped[str] = mapped_column(String(255), nullable=False)
    polar_price_id: Mapped[str | None] = mapped_column(String(255))
    polar_product_id: Mapped[str | None] = mapped_column(String(255), index=True)
    user_id: Mapped[str | None] = mapped_column(String(255), index=True)
    customer_id: Mapped[str | None] = mapped_column(String(255), index=True)
    customer_email: Mapped[str | None] = mapped_column(String(255))
    currency: Mapped[str | None] = mapped_column(String(8))
    interval: Mapped[str | None] = mapped_column(String(20))
    amount: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str | None] = mapped_column(String(40), index=True)
    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_at_period_end: Mapped[bool | None] = mapped_column(Boolean)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    customer_cancellation_reason: Mapped[str | None] = mapped_column(String(120))
    customer_cancellation_comment: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    custom_field_data: Mapped[dict | None] = mapped_column(JSON)
    provider_modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )


# ── Webhooks ─────────────────────────────────────────────


class WebhookEvent(Base):
    """Append-only log of every verified webhook delivery."""

    __tablename__ = "webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    type: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    polar_event_id: Mapped[str | None] = mapped_column(String(255), index=True)
    created_at: Mapped[str | None] = mapped_column(String(64))
    modified_at: Mapped[str | None] = mapped_column(String(64))
    data: Mapped[dict | None] = mapped_column(JSON)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
