"""Tests for the admin permission gate."""

import pytest

from app.models.admin import AdminRole
from app.services.permissions import (
    AccessDenied,
    Permission,
    default_permissions,
    permission_gate,
)


def test_super_admin_is_granted_everything(db_session, super_admin):
    assert super_admin.permissions == []
    for permission in (Permission.delete_products, Permission.manage_admins):
        assert permission_gate.has_permission(db_session, super_admin.user_id, permission)


def test_explicit_permission_list_is_checked(db_session, make_admin):
    admin = make_admin(AdminRole.admin, permissions=["view_products"])

    assert permission_gate.has_permission(
        db_session, admin.user_id, Permission.view_products
    )
    assert not permission_gate.has_permission(
        db_session, admin.user_id, Permission.create_products
    )


def test_missing_permission_message(db_session, support_admin):
    with pytest.raises(AccessDenied) as exc_info:
        permission_gate.require_admin_permission(
            db_session, support_admin.user_id, Permission.manage_subscriptions
        )
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == {
        "code": "access_denied",
        "message": "Access denied: Missing permission 'manage_subscriptions'",
    }


def test_unknown_caller_is_not_an_admin(db_session):
    with pytest.raises(AccessDenied) as exc_info:
        permission_gate.require_admin_permission(
            db_session, "user_plain", Permission.view_subscriptions
        )
    assert exc_info.value.message == "Access denied: Admin privileges required"


def test_inactive_admin_is_denied(db_session, make_admin):
    admin = make_admin(AdminRole.super_admin)
    admin.is_active = False
    db_session.commit()

    assert permission_gate.get_active_admin(db_session, admin.user_id) is None
    with pytest.raises(AccessDenied):
        permission_gate.require_admin_permission(
            db_session, admin.user_id, Permission.view_subscriptions
        )


def test_default_role_permissions():
    support = default_permissions("support")
    assert "view_subscriptions" in support
    assert "manage_subscriptions" not in support
    assert "edit_products" in default_permissions("admin")
    assert "delete_products" not in default_permissions("admin")
    assert len(default_permissions("super_admin")) == len(Permission)
    assert default_permissions("nobody") == []
