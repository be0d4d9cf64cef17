"""Admin permission catalog and the gate every admin operation goes through."""

from __future__ import annotations

import enum
import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.admin import Admin, AdminRole

logger = logging.getLogger(__name__)


class Permission(str, enum.Enum):
    # Page access
    page_admin_dashboard = "page_admin_dashboard"
    page_admin_users = "page_admin_users"
    page_admin_subscriptions = "page_admin_subscriptions"
    page_admin_products = "page_admin_products"
    page_admin_analytics = "page_admin_analytics"
    page_admin_settings = "page_admin_settings"
    page_admin_permissions = "page_admin_permissions"
    page_admin_security = "page_admin_security"
    page_admin_performance = "page_admin_performance"
    page_admin_polar_setup = "page_admin_polar_setup"

    # End-user capabilities
    access_dashboard = "access_dashboard"
    access_chat = "access_chat"
    access_user_settings = "access_user_settings"
    edit_profile = "edit_profile"
    change_password = "change_password"
    create_content = "create_content"
    edit_own_content = "edit_own_content"
    delete_own_content = "delete_own_content"
    share_content = "share_content"
    view_own_subscription = "view_own_subscription"
    manage_own_subscription = "manage_own_subscription"
    cancel_own_subscription = "cancel_own_subscription"
    use_api = "use_api"
    export_own_data = "export_own_data"

    # Users
    view_users = "view_users"
    edit_users = "edit_users"
    delete_users = "delete_users"
    manage_user_roles = "manage_user_roles"

    # Subscriptions
    view_subscriptions = "view_subscriptions"
    edit_subscriptions = "edit_subscriptions"
    manage_subscriptions = "manage_subscriptions"
    cancel_subscriptions = "cancel_subscriptions"
    refund_subscriptions = "refund_subscriptions"

    # Products
    view_products = "view_products"
    create_products = "create_products"
    edit_products = "edit_products"
    delete_products = "delete_products"

    # Analytics
    view_analytics = "view_analytics"
    export_data = "export_data"

    # System
    manage_admins = "manage_admins"
    view_audit_logs = "view_audit_logs"
    system_settings = "system_settings"

    # Support
    customer_support = "customer_support"
    view_user_sessions = "view_user_sessions"


ROLE_PERMISSIONS: dict[str, list[Permission]] = {
    "super_admin": list(Permission),
    "admin": [
        Permission.page_admin_dashboard,
        Permission.page_admin_users,
        Permission.page_admin_subscriptions,
        Permission.page_admin_products,
        Permission.page_admin_analytics,
        Permission.page_admin_settings,
        Permission.page_admin_permissions,
        Permission.page_admin_security,
        Permission.page_admin_performance,
        Permission.page_admin_polar_setup,
        Permission.view_users,
        Permission.edit_users,
        Permission.view_subscriptions,
        Permission.edit_subscriptions,
        Permission.manage_subscriptions,
        Permission.cancel_subscriptions,
        Permission.view_products,
        Permission.create_products,
        Permission.edit_products,
        Permission.view_analytics,
        Permission.system_settings,
        Permission.customer_support,
        Permission.view_user_sessions,
    ],
    "support": [
        Permission.page_admin_dashboard,
        Permission.page_admin_users,
        Permission.page_admin_subscriptions,
        Permission.view_users,
        Permission.view_subscriptions,
        Permission.view_products,
        Permission.customer_support,
        Permission.view_user_sessions,
    ],
    "user": [
        Permission.access_dashboard,
        Permission.access_chat,
        Permission.access_user_settings,
        Permission.edit_profile,
        Permission.change_password,
        Permission.create_content,
        Permission.edit_own_content,
        Permission.delete_own_content,
        Permission.share_content,
        Permission.view_own_subscription,
        Permission.manage_own_subscription,
        Permission.cancel_own_subscription,
        Permission.use_api,
        Permission.export_own_data,
    ],
}


def default_permissions(role: str) -> list[str]:
    return [p.value for p in ROLE_PERMISSIONS.get(role, [])]


class AccessDenied(HTTPException):
    def __init__(self, message: str) -> None:
        super().__init__(
            status_code=403, detail={"code": "access_denied", "message": message}
        )
        self.message = message


class PermissionGate:
    """Resolves the caller's admin record and checks one permission."""

    @staticmethod
    def get_active_admin(db: Session, actor_id: str) -> Admin | None:
        stmt = (
            select(Admin)
            .where(Admin.user_id == actor_id, Admin.is_active.is_(True))
            .limit(1)
        )
        return db.scalars(stmt).first()

    @staticmethod
    def _grants(admin: Admin, permission: Permission) -> bool:
        if admin.role == AdminRole.super_admin:
            return True
        return permission.value in (admin.permissions or [])

    def has_permission(
        self, db: Session, actor_id: str, permission: Permission
    ) -> bool:
        admin = self.get_active_admin(db, actor_id)
        return admin is not None and self._grants(admin, permission)

    def require_admin_permission(
        self, db: Session, actor_id: str, permission: Permission
    ) -> Admin:
        admin = self.get_active_admin(db, actor_id)
        if admin is None:
            logger.warning(
                "Admin access denied: no active admin record",
                extra={"admin_id": actor_id},
            )
            raise AccessDenied("Access denied: Admin privileges required")
        if not self._grants(admin, permission):
            logger.warning(
                "Admin access denied: missing %s",
                permission.value,
                extra={"admin_id": actor_id},
            )
            raise AccessDenied(
                f"Access denied: Missing permission '{permission.value}'"
            )
        return admin


permission_gate = PermissionGate()
