from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ── Product ──────────────────────────────────────────────


class ProductBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    polar_product_id: str = Field(default="", max_length=255)
    category: str = Field(default="subscription", max_length=80)
    features: list[str] = Field(default_factory=list)
    is_active: bool = True
    metadata_: dict | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata_", "metadata"),
        serialization_alias="metadata",
    )


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    polar_product_id: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=80)
    features: list[str] | None = None
    is_active: bool | None = None
    metadata_: dict | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata_", "metadata"),
        serialization_alias="metadata",
    )


class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
    id: UUID
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class ProductStats(BaseModel):
    total: int
    active: int
    inactive: int
    polar_linked: int
    local_only: int
    by_category: dict[str, int]


class ProductDeleteResult(BaseModel):
    success: bool
    deleted: Literal["soft", "hard"]


# ── Subscription ─────────────────────────────────────────


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
    id: UUID
    polar_id: str
    polar_price_id: str | None = None
    polar_product_id: str | None = None
    user_id: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    currency: str | None = None
    interval: str | None = None
    amount: int | None = None
    status: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    canceled_at: datetime | None = None
    customer_cancellation_reason: str | None = None
    customer_cancellation_comment: str | None = None
    metadata_: dict | None = Field(default=None, serialization_alias="metadata")
    created_at: datetime
    updated_at: datetime


class SubscriptionUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    token_identifier: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


class SubscriptionListItem(SubscriptionRead):
    user: SubscriptionUser | None = None


class SubscriptionList(BaseModel):
    items: list[SubscriptionListItem]
    total: int
    has_more: bool


class SubscriptionCancel(BaseModel):
    reason: str | None = None


class WebhookEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    type: str
    polar_event_id: str | None = None
    created_at: str | None = None
    modified_at: str | None = None
    data: dict | None = None
    received_at: datetime


class SubscriptionDetail(BaseModel):
    subscription: SubscriptionRead
    user: SubscriptionUser | None = None
    webhook_events: list[WebhookEventRead]


# ── Checkout ─────────────────────────────────────────────


class CheckoutCreate(BaseModel):
    user_id: str = Field(min_length=1)
    price_id: str = Field(min_length=1)


class CheckoutRead(BaseModel):
    url: str
    checkout_id: str | None = None
