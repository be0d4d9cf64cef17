from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

SyncType = Literal["subscriptions", "customers", "all"]


class SyncRequest(BaseModel):
    sync_type: SyncType = "subscriptions"
    force_update: bool = False


class SyncResult(BaseModel):
    success: bool
    message: str
    subscriptions_processed: int = 0
    customers_processed: int = 0
    errors: list[str] = Field(default_factory=list)
    skipped: int = 0
    created: int = 0
    updated: int = 0


class ProductSyncResult(BaseModel):
    success: bool
    message: str
    synced_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    errors: list[str] = Field(default_factory=list)


class ProductRefreshResult(BaseModel):
    success: bool
    message: str
    product_id: UUID | None = None


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    admin_id: str
    action: str
    target: str
    target_id: str | None = None
    details: dict | None = None
    timestamp: datetime


class SyncStatus(BaseModel):
    total_subscriptions: int
    active_subscriptions: int
    recent_syncs: list[AuditLogRead]
    last_sync_time: datetime | None = None


class ConnectionStatus(BaseModel):
    has_credentials: bool
    organization_id: str | None = None
    token_configured: bool


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    organization: dict | None = None
