"""Tests for local product administration."""

import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.models.audit import AuditLog
from app.schemas.billing import ProductCreate, ProductUpdate
from app.services import billing as billing_service
from app.services.permissions import AccessDenied


def _create(db, admin, **fields):
    fields.setdefault("name", f"Plan {uuid.uuid4().hex[:6]}")
    return billing_service.products.create(db, admin.user_id, ProductCreate(**fields))


def test_create_product_is_audited(db_session, super_admin):
    product = _create(
        db_session, super_admin, name="Starter", description="Basic tier"
    )

    assert product.name == "Starter"
    assert product.is_active is True
    assert product.created_by == super_admin.user_id
    entry = db_session.scalars(select(AuditLog)).one()
    assert entry.action == "create_product"
    assert entry.target_id == str(product.id)


def test_create_product_rejects_duplicate_name(db_session, super_admin):
    _create(db_session, super_admin, name="Starter")
    with pytest.raises(HTTPException) as exc_info:
        _create(db_session, super_admin, name="Starter")
    assert exc_info.value.status_code == 409


def test_create_product_rejects_duplicate_polar_id(db_session, super_admin):
    _create(db_session, super_admin, polar_product_id="prod_1")
    with pytest.raises(HTTPException) as exc_info:
        _create(db_session, super_admin, polar_product_id="prod_1")
    assert exc_info.value.detail == "A product with this Polar ID already exists"


def test_local_products_may_share_blank_polar_id(db_session, super_admin):
    _create(db_session, super_admin)
    _create(db_session, super_admin)
    stats = billing_service.products.stats(db_session, super_admin.user_id)
    assert stats["local_only"] == 2


def test_create_requires_permission(db_session, support_admin):
    with pytest.raises(AccessDenied):
        _create(db_session, support_admin)


def test_get_product_not_found(db_session, super_admin):
    with pytest.raises(HTTPException) as exc_info:
        billing_service.products.get(db_session, super_admin.user_id, str(uuid.uuid4()))
    assert exc_info.value.status_code == 404


def test_get_product_invalid_id(db_session, super_admin):
    with pytest.raises(HTTPException) as exc_info:
        billing_service.products.get(db_session, super_admin.user_id, "not-a-uuid")
    assert exc_info.value.status_code == 400


def test_list_products_filters_and_orders(db_session, super_admin):
    _create(db_session, super_admin, name="Bravo", category="addon")
    _create(db_session, super_admin, name="Alpha")
    _create(db_session, super_admin, name="Charlie", is_active=False)

    items, total = billing_service.products.list(
        db_session,
        super_admin.user_id,
        is_active=True,
        category=None,
        order_by="name",
        order_dir="asc",
        limit=50,
        offset=0,
    )
    assert total == 2
    assert [p.name for p in items] == ["Alpha", "Bravo"]

    with pytest.raises(HTTPException):
        billing_service.products.list(
            db_session, super_admin.user_id, None, None, "price", "asc", 10, 0
        )


def test_search_products(db_session, super_admin):
    _create(db_session, super_admin, name="Team Plan", description="For groups")
    _create(db_session, super_admin, name="Solo", description="Just you")

    found = billing_service.products.search(db_session, super_admin.user_id, "GROUP")
    assert [p.name for p in found] == ["Team Plan"]
    assert billing_service.products.search(db_session, super_admin.user_id, "  ") == []


def test_product_stats(db_session, super_admin):
    _create(db_session, super_admin, polar_product_id="prod_1", category="subscription")
    _create(db_session, super_admin, category="addon", is_active=False)

    stats = billing_service.products.stats(db_session, super_admin.user_id)

    assert stats == {
        "total": 2,
        "active": 1,
        "inactive": 1,
        "polar_linked": 1,
        "local_only": 1,
        "by_category": {"subscription": 1, "addon": 1},
    }


def test_update_product_records_previous_state(db_session, super_admin):
    product = _create(db_session, super_admin, name="Old Name")

    updated = billing_service.products.update(
        db_session,
        super_admin.user_id,
        str(product.id),
        ProductUpdate(name="New Name", is_active=False),
    )

    assert updated.name == "New Name"
    assert updated.is_active is False
    entry = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "update_product")
    ).one()
    assert entry.details["previous_state"]["name"] == "Old Name"
    assert entry.details["changes"] == ["is_active", "name"]


def test_update_product_name_clash(db_session, super_admin):
    _create(db_session, super_admin, name="Taken")
    product = _create(db_session, super_admin, name="Mine")
    with pytest.raises(HTTPException) as exc_info:
        billing_service.products.update(
            db_session, super_admin.user_id, str(product.id), ProductUpdate(name="Taken")
        )
    assert exc_info.value.status_code == 409


def test_soft_delete_deactivates(db_session, super_admin):
    product = _create(db_session, super_admin)

    mode = billing_service.products.delete(
        db_session, super_admin.user_id, str(product.id)
    )

    assert mode == "soft"
    db_session.expire_all()
    assert billing_service.products.get(
        db_session, super_admin.user_id, str(product.id)
    ).is_active is False


def test_hard_delete_blocked_by_active_subscriptions(
    db_session, super_admin, make_subscription
):
    product = _create(db_session, super_admin, polar_product_id="prod_1")
    make_subscription(polar_product_id="prod_1", status="active")

    with pytest.raises(HTTPException) as exc_info:
        billing_service.products.delete(
            db_session, super_admin.user_id, str(product.id), hard_delete=True
        )
    assert exc_info.value.status_code == 400
    assert "1 active subscriptions" in exc_info.value.detail


def test_hard_delete_removes_row(db_session, super_admin, make_subscription):
    product = _create(db_session, super_admin, polar_product_id="prod_1")
    make_subscription(polar_product_id="prod_1", status="canceled")

    mode = billing_service.products.delete(
        db_session, super_admin.user_id, str(product.id), hard_delete=True
    )

    assert mode == "hard"
    with pytest.raises(HTTPException):
        billing_service.products.get(db_session, super_admin.user_id, str(product.id))
    entry = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "hard_delete_product")
    ).one()
    assert entry.details["active_subscriptions_count"] == 0
