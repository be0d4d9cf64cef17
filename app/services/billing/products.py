from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.models.billing import Product, Subscription
from app.schemas.billing import ProductCreate, ProductUpdate
from app.services.audit import audit_logs
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.permissions import Permission, PermissionGate, permission_gate

logger = logging.getLogger(__name__)


class Products:
    def __init__(self, gate: PermissionGate | None = None) -> None:
        self.gate = gate or permission_gate

    @staticmethod
    def get_by_polar_product_id(db: Session, polar_product_id: str) -> Product | None:
        if not polar_product_id:
            return None
        stmt = select(Product).where(Product.polar_product_id == polar_product_id)
        return db.scalars(stmt.limit(1)).first()

    @staticmethod
    def _ensure_name_free(db: Session, name: str) -> None:
        if db.scalars(select(Product).where(Product.name == name).limit(1)).first():
            raise HTTPException(
                status_code=409, detail="A product with this name already exists"
            )

    def _ensure_polar_id_free(self, db: Session, polar_product_id: str) -> None:
        if self.get_by_polar_product_id(db, polar_product_id):
            raise HTTPException(
                status_code=409, detail="A product with this Polar ID already exists"
            )

    def create(self, db: Session, admin_id: str, payload: ProductCreate) -> Product:
        self.gate.require_admin_permission(db, admin_id, Permission.create_products)
        self._ensure_name_free(db, payload.name)
        self._ensure_polar_id_free(db, payload.polar_product_id)
        item = Product(**payload.model_dump(), created_by=admin_id)
        db.add(item)
        db.flush()
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="create_product",
            target="product",
            target_id=str(item.id),
            details={
                "product_name": item.name,
                "category": item.category,
                "is_active": item.is_active,
            },
            commit=False,
        )
        db.commit()
        db.refresh(item)
        logger.info("Created Product: %s", item.id)
        return item

    def get(self, db: Session, admin_id: str, item_id: str) -> Product:
        self.gate.require_admin_permission(db, admin_id, Permission.view_products)
        item = db.get(Product, coerce_uuid(item_id))
        if not item:
            raise HTTPException(status_code=404, detail="Product not found")
        return item

    def list(
        self,
        db: Session,
        admin_id: str,
        is_active: bool | None,
        category: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Product], int]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_products)
        stmt = select(Product)
        if is_active is not None:
            stmt = stmt.where(Product.is_active == is_active)
        if category:
            stmt = stmt.where(Product.category == category)
        total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {"created_at": Product.created_at, "name": Product.name},
        )
        items = list(db.scalars(apply_pagination(stmt, limit, offset)).all())
        return items, total

    def search(
        self, db: Session, admin_id: str, term: str, limit: int = 10
    ) -> list[Product]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_products)
        if not term.strip():
            return []
        pattern = f"%{term.strip().lower()}%"
        stmt = (
            select(Product)
            .where(
                or_(
                    func.lower(Product.name).like(pattern),
                    func.lower(Product.description).like(pattern),
                    func.lower(Product.category).like(pattern),
                )
            )
            .order_by(Product.name)
            .limit(limit)
        )
        return list(db.scalars(stmt).all())

    def stats(self, db: Session, admin_id: str) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_products)
        products = list(db.scalars(select(Product)).all())
        by_category: dict[str, int] = {}
        for product in products:
            if product.category:
                by_category[product.category] = by_category.get(product.category, 0) + 1
        active = sum(1 for p in products if p.is_active)
        linked = sum(1 for p in products if p.polar_product_id)
        return {
            "total": len(products),
            "active": active,
            "inactive": len(products) - active,
            "polar_linked": linked,
            "local_only": len(products) - linked,
            "by_category": by_category,
        }

    def update(
        self, db: Session, admin_id: str, item_id: str, payload: ProductUpdate
    ) -> Product:
        self.gate.require_admin_permission(db, admin_id, Permission.edit_products)
        item = db.get(Product, coerce_uuid(item_id))
        if not item:
            raise HTTPException(status_code=404, detail="Product not found")
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != item.name:
            self._ensure_name_free(db, changes["name"])
        if (
            changes.get("polar_product_id")
            and changes["polar_product_id"] != item.polar_product_id
        ):
            self._ensure_polar_id_free(db, changes["polar_product_id"])
        previous = {
            "name": item.name,
            "is_active": item.is_active,
            "category": item.category,
        }
        for key, value in changes.items():
            setattr(item, key, value)
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="update_product",
            target="product",
            target_id=str(item.id),
            details={
                "product_name": item.name,
                "changes": sorted(changes),
                "previous_state": previous,
            },
            commit=False,
        )
        db.commit()
        db.refresh(item)
        logger.info("Updated %s: %s", Product.__name__, item.id)
        return item

    def delete(
        self, db: Session, admin_id: str, item_id: str, hard_delete: bool = False
    ) -> str:
        """Deactivate a product, or remove it when ``hard_delete`` is set.

        Hard deletes are refused while active subscriptions still point at
        the product's Polar id.
        """
        self.gate.require_admin_permission(db, admin_id, Permission.delete_products)
        item = db.get(Product, coerce_uuid(item_id))
        if not item:
            raise HTTPException(status_code=404, detail="Product not found")
        active_count = 0
        if item.polar_product_id:
            active_count = (
                db.scalar(
                    select(func.count())
                    .select_from(Subscription)
                    .where(
                        Subscription.polar_product_id == item.polar_product_id,
                        Subscription.status == "active",
                    )
                )
                or 0
            )
        if hard_delete and active_count:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Cannot permanently delete product with {active_count} active "
                    "subscriptions. Consider deactivating instead."
                ),
            )
        details = {
            "product_name": item.name,
            "polar_product_id": item.polar_product_id,
            "active_subscriptions_count": active_count,
        }
        target_id = str(item.id)
        if hard_delete:
            db.delete(item)
        else:
            item.is_active = False
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="hard_delete_product" if hard_delete else "soft_delete_product",
            target="product",
            target_id=target_id,
            details=details,
            commit=False,
        )
        db.commit()
        mode = "hard" if hard_delete else "soft"
        logger.info("Deleted %s (%s): %s", Product.__name__, mode, target_id)
        return mode


products = Products()
