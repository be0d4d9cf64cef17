"""Admin-triggered reconciliation of local billing data against Polar.sh.

Every sweep is audited (start, then success/partial/failed) and always
returns a structured result; only a permission failure raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.metrics import SYNC_DURATION, SYNC_RECORDS, SYNC_RUNS
from app.models.billing import Product, Subscription
from app.schemas.polar import ProductSyncResult, SyncResult
from app.services.audit import POLAR_INTEGRATION_TARGET, audit_logs
from app.services.billing.products import Products
from app.services.billing.subscriptions import (
    Subscriptions,
    subscription_fields_from_polar,
)
from app.services.billing.webhooks import UserResolver, build_user_resolver
from app.services.common import coerce_uuid
from app.services.permissions import Permission, PermissionGate, permission_gate
from app.services.polar_client import (
    BillingProviderConfig,
    PolarAPIError,
    PolarClient,
    build_polar_client,
)

logger = logging.getLogger(__name__)

SYNC_TYPES = ("subscriptions", "customers", "all")
MAX_AUDITED_ERRORS = 10


class SyncFetchError(RuntimeError):
    """A provider page could not be fetched; the sweep stops."""


def product_fields_from_polar(data: dict[str, Any], synced_at: datetime) -> dict[str, Any]:
    return {
        "name": data.get("name") or data["id"],
        "description": data.get("description") or "",
        "polar_product_id": data["id"],
        "is_active": not data.get("is_archived", False),
        "category": data.get("type") or "subscription",
        "features": [
            benefit.get("description")
            for benefit in data.get("benefits") or []
            if benefit.get("description")
        ],
        "metadata_": {"polarData": data, "syncedAt": synced_at.isoformat()},
    }


def mask_organization_id(organization_id: str) -> str | None:
    if not organization_id:
        return None
    return organization_id[:8] + "..."


class PolarSync:
    def __init__(
        self,
        client_factory: Callable[[], PolarClient] = build_polar_client,
        gate: PermissionGate | None = None,
        user_resolver: UserResolver | None = None,
        sleep: Callable[[float], None] = time.sleep,
        page_delay: float | None = None,
    ) -> None:
        self.client_factory = client_factory
        self.gate = gate or permission_gate
        self.user_resolver = user_resolver
        self.sleep = sleep
        self.page_delay = (
            settings.polar_page_delay_seconds if page_delay is None else page_delay
        )

    def _resolver(self) -> UserResolver:
        if self.user_resolver is None:
            self.user_resolver = build_user_resolver()
        return self.user_resolver

    # ── Subscriptions / customers sweep ──────────────────

    def sync_polar_data(
        self,
        db: Session,
        admin_id: str,
        sync_type: str = "subscriptions",
        force_update: bool = False,
    ) -> SyncResult:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        if sync_type not in SYNC_TYPES:
            raise HTTPException(status_code=400, detail="Invalid sync type")

        result = SyncResult(success=False, message="")
        target_id = f"sync_{sync_type}"
        log_extra = {"admin_id": admin_id, "sync_type": sync_type}
        started = time.monotonic()
        try:
            client = self.client_factory()
            client.config.require_api()
            audit_logs.log_action(
                db,
                admin_id=admin_id,
                action="POLAR_SYNC_START",
                target=POLAR_INTEGRATION_TARGET,
                target_id=target_id,
                details={"sync_type": sync_type, "force_update": force_update},
            )
            logger.info("Polar sync started", extra=log_extra)
            if sync_type in ("subscriptions", "all"):
                self._sync_subscriptions(db, client, force_update, result)
            if sync_type in ("customers", "all"):
                self._sync_customers(db, client, result)
        except Exception as exc:
            db.rollback()
            error = str(exc) or exc.__class__.__name__
            duration_ms = round((time.monotonic() - started) * 1000, 2)
            result.errors.append(error)
            result.success = False
            result.message = f"Sync failed: {error}"
            audit_logs.log_action(
                db,
                admin_id=admin_id,
                action="POLAR_SYNC_FAILED",
                target=POLAR_INTEGRATION_TARGET,
                target_id=target_id,
                details={"error": error, "duration_ms": duration_ms, **_counts(result)},
            )
            SYNC_RUNS.labels(sync_type, "failed").inc()
            SYNC_DURATION.labels(sync_type).observe(duration_ms / 1000.0)
            logger.error(
                "Polar sync failed: %s",
                error,
                extra={**log_extra, "duration_ms": duration_ms},
            )
            return result

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        result.success = not result.errors
        if result.success:
            result.message = (
                f"Sync completed: created {result.created} subscriptions, "
                f"updated {result.updated} subscriptions, "
                f"skipped {result.skipped} subscriptions"
            )
        else:
            result.message = (
                f"Sync completed with errors: created {result.created} subscriptions, "
                f"updated {result.updated} subscriptions, {len(result.errors)} errors"
            )
        status = "success" if result.success else "partial"
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="POLAR_SYNC_SUCCESS" if result.success else "POLAR_SYNC_PARTIAL",
            target=POLAR_INTEGRATION_TARGET,
            target_id=target_id,
            details={"duration_ms": duration_ms, **result.model_dump()},
        )
        SYNC_RUNS.labels(sync_type, status).inc()
        SYNC_DURATION.labels(sync_type).observe(duration_ms / 1000.0)
        logger.info(
            result.message, extra={**log_extra, "duration_ms": duration_ms}
        )
        return result

    def _pages(self, fetch: Callable[[int], Any], resource: str):
        page = 1
        while True:
            try:
                batch = fetch(page)
            except Exception as exc:
                raise SyncFetchError(
                    f"Failed to fetch {resource} page {page}: {exc}"
                ) from exc
            yield batch.items
            if not batch.has_more:
                return
            page += 1
            self.sleep(self.page_delay)

    def _sync_subscriptions(
        self,
        db: Session,
        client: PolarClient,
        force_update: bool,
        result: SyncResult,
    ) -> None:
        for items in self._pages(client.fetch_subscriptions, "subscriptions"):
            for item in items:
                polar_id = item.get("id", "<missing id>")
                try:
                    outcome = self._reconcile_subscription(db, item, force_update)
                    db.commit()
                except Exception as exc:
                    db.rollback()
                    result.errors.append(
                        f"Failed to process subscription {polar_id}: {exc}"
                    )
                    SYNC_RECORDS.labels("subscription", "error").inc()
                    logger.warning(
                        "Failed to process subscription: %s",
                        exc,
                        extra={"polar_id": polar_id},
                    )
                    continue
                setattr(result, outcome, getattr(result, outcome) + 1)
                result.subscriptions_processed += 1
                SYNC_RECORDS.labels("subscription", outcome).inc()

    def _reconcile_subscription(
        self, db: Session, item: dict[str, Any], force_update: bool
    ) -> str:
        fields = subscription_fields_from_polar(item)
        existing = Subscriptions.get_by_polar_id(db, fields["polar_id"])
        if existing is None:
            if not fields["user_id"]:
                fields["user_id"] = self._resolver().resolve(
                    db, fields["customer_email"]
                )
            db.add(Subscription(**fields))
            db.flush()
            return "created"
        if not force_update:
            return "skipped"
        for key, value in fields.items():
            # Never unlink an owner or forget an email the provider omitted.
            if key in ("user_id", "customer_email") and not value:
                continue
            setattr(existing, key, value)
        return "updated"

    def _sync_customers(
        self, db: Session, client: PolarClient, result: SyncResult
    ) -> None:
        for items in self._pages(client.fetch_customers, "customers"):
            for customer in items:
                customer_id = customer.get("id", "<missing id>")
                try:
                    linked = self._link_customer(db, customer)
                    db.commit()
                except Exception as exc:
                    db.rollback()
                    result.errors.append(
                        f"Failed to process customer {customer_id}: {exc}"
                    )
                    SYNC_RECORDS.labels("customer", "error").inc()
                    continue
                result.customers_processed += 1
                result.updated += linked
                SYNC_RECORDS.labels("customer", "linked" if linked else "skipped").inc()

    def _link_customer(self, db: Session, customer: dict[str, Any]) -> int:
        """Attach orphaned subscriptions of ``customer`` to a local user."""
        email = customer.get("email")
        orphans = list(
            db.scalars(
                select(Subscription).where(
                    Subscription.customer_id == customer["id"],
                    Subscription.user_id.is_(None),
                )
            ).all()
        )
        if not orphans:
            return 0
        user_id = self._resolver().resolve(db, email)
        if not user_id:
            return 0
        for subscription in orphans:
            subscription.user_id = user_id
            if not subscription.customer_email:
                subscription.customer_email = email
        logger.info(
            "Linked %d orphaned subscriptions to user %s", len(orphans), user_id
        )
        return len(orphans)

    # ── Products ─────────────────────────────────────────

    def sync_products(self, db: Session, admin_id: str) -> ProductSyncResult:
        self.gate.require_admin_permission(db, admin_id, Permission.edit_products)
        client = self.client_factory()
        if not client.is_configured():
            return ProductSyncResult(
                success=False,
                message=(
                    "Polar.sh API credentials not configured. Please set "
                    "POLAR_ACCESS_TOKEN and POLAR_ORGANIZATION_ID environment variables."
                ),
            )
        try:
            polar_products = client.fetch_products()
        except Exception as exc:
            db.rollback()
            audit_logs.log_action(
                db,
                admin_id=admin_id,
                action="sync_polar_products_error",
                target="products",
                target_id="bulk_sync",
                details={"error": str(exc)},
            )
            logger.error("Failed to sync Polar products: %s", exc)
            return ProductSyncResult(
                success=False,
                message=f"Failed to sync products: {exc}",
                errors=[str(exc)],
            )

        result = ProductSyncResult(success=False, message="")
        synced_at = datetime.now(UTC)
        for data in polar_products:
            try:
                outcome = self._reconcile_product(db, data, admin_id, synced_at)
                db.commit()
            except Exception as exc:
                db.rollback()
                result.errors.append(f"Product {data.get('name')}: {_reason(exc)}")
                SYNC_RECORDS.labels("product", "error").inc()
                continue
            if outcome == "created":
                result.created_count += 1
            else:
                result.updated_count += 1
            result.synced_count += 1
            SYNC_RECORDS.labels("product", outcome).inc()

        result.success = not result.errors
        result.message = f"Successfully synced {result.synced_count} products from Polar.sh"
        if result.errors:
            result.message += f" with {len(result.errors)} errors"
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="sync_polar_products",
            target="products",
            target_id="bulk_sync",
            details={
                "total_polar_products": len(polar_products),
                "synced_count": result.synced_count,
                "created_count": result.created_count,
                "updated_count": result.updated_count,
                "error_count": len(result.errors),
                "errors": result.errors[:MAX_AUDITED_ERRORS],
            },
        )
        logger.info(result.message, extra={"admin_id": admin_id})
        return result

    @staticmethod
    def _reconcile_product(
        db: Session, data: dict[str, Any], admin_id: str, synced_at: datetime
    ) -> str:
        fields = product_fields_from_polar(data, synced_at)
        existing = Products.get_by_polar_product_id(db, fields["polar_product_id"])
        clash = db.scalars(
            select(Product).where(Product.name == fields["name"]).limit(1)
        ).first()
        if clash is not None and clash is not existing:
            raise ValueError("A product with this name already exists")
        if existing is None:
            db.add(Product(**fields, created_by=admin_id))
            db.flush()
            return "created"
        for key, value in fields.items():
            setattr(existing, key, value)
        return "updated"

    def sync_product(self, db: Session, admin_id: str, product_id: str) -> dict[str, Any]:
        """Refresh one provider-linked product from ``GET /products/{id}``."""
        self.gate.require_admin_permission(db, admin_id, Permission.edit_products)
        product = db.get(Product, coerce_uuid(product_id))
        if product is None or not product.polar_product_id:
            raise HTTPException(
                status_code=404, detail="Product not found or not linked to Polar"
            )
        try:
            data = self.client_factory().get_product(product.polar_product_id)
        except Exception as exc:
            logger.error("Failed to sync product with Polar: %s", exc)
            return {"success": False, "message": str(exc) or "Failed to sync with Polar"}

        product.name = data.get("name") or product.name
        product.description = data.get("description") or ""
        product.is_active = not data.get("is_archived", False)
        product.metadata_ = {
            **(product.metadata_ or {}),
            "polarSync": {
                "lastSyncAt": datetime.now(UTC).isoformat(),
                "polarType": data.get("type"),
                "isRecurring": data.get("is_recurring"),
                "pricesCount": len(data.get("prices") or []),
            },
        }
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="sync_polar_product",
            target="product",
            target_id=str(product.id),
            details={"polar_product_id": product.polar_product_id},
            commit=False,
        )
        db.commit()
        return {
            "success": True,
            "message": "Product synced successfully with Polar",
            "product_id": product.id,
        }

    # ── Status & connectivity ────────────────────────────

    def get_sync_status(self, db: Session, admin_id: str) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        recent = audit_logs.recent_for_target(db, POLAR_INTEGRATION_TARGET, admin_id)
        total = db.scalar(select(func.count()).select_from(Subscription)) or 0
        active = (
            db.scalar(
                select(func.count())
                .select_from(Subscription)
                .where(Subscription.status == "active")
            )
            or 0
        )
        return {
            "total_subscriptions": total,
            "active_subscriptions": active,
            "recent_syncs": recent,
            "last_sync_time": recent[0].timestamp if recent else None,
        }

    def check_polar_connection(self, db: Session, admin_id: str) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        config = BillingProviderConfig.from_settings()
        return {
            "has_credentials": config.has_api_credentials(),
            "organization_id": mask_organization_id(config.organization_id),
            "token_configured": bool(config.access_token),
        }

    def test_polar_connection(self, db: Session, admin_id: str) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        client = self.client_factory()
        if not client.is_configured():
            return {
                "success": False,
                "message": (
                    "Polar.sh API credentials not configured. Please set "
                    "POLAR_ACCESS_TOKEN and POLAR_ORGANIZATION_ID environment variables."
                ),
            }
        try:
            organization = client.get_organization()
        except PolarAPIError as exc:
            return {
                "success": False,
                "message": f"Polar.sh API error: {exc.status_code}",
            }
        except Exception as exc:
            logger.error("Failed to test Polar connection: %s", exc)
            return {"success": False, "message": f"Failed to connect to Polar.sh: {exc}"}
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="test_polar_connection",
            target="system",
            target_id="polar_api",
            details={"organization_name": organization.get("name")},
        )
        return {
            "success": True,
            "message": (
                "Successfully connected to Polar.sh organization: "
                f"{organization.get('name')}"
            ),
            "organization": organization,
        }


def _counts(result: SyncResult) -> dict[str, int]:
    return {
        "created": result.created,
        "updated": result.updated,
        "skipped": result.skipped,
        "subscriptions_processed": result.subscriptions_processed,
        "customers_processed": result.customers_processed,
    }


def _reason(exc: Exception) -> str:
    if isinstance(exc, HTTPException):
        return str(exc.detail)
    return str(exc)


polar_sync = PolarSync()
