from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.services.common import apply_pagination

logger = logging.getLogger(__name__)

POLAR_INTEGRATION_TARGET = "polar_integration"


class AuditLogs:
    @staticmethod
    def log_action(
        db: Session,
        admin_id: str,
        action: str,
        target: str,
        target_id: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        commit: bool = True,
    ) -> AuditLog:
        """Append an audit entry.

        With ``commit=False`` the entry joins the caller's transaction.
        """
        entry = AuditLog(
            admin_id=admin_id,
            action=action,
            target=target,
            target_id=target_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        logger.info(
            "Audit %s on %s/%s",
            action,
            target,
            target_id,
            extra={"admin_id": admin_id},
        )
        return entry

    @staticmethod
    def list(
        db: Session,
        admin_id: str | None,
        target: str | None,
        action: str | None,
        limit: int,
        offset: int,
    ) -> list[AuditLog]:
        stmt = select(AuditLog)
        if admin_id:
            stmt = stmt.where(AuditLog.admin_id == admin_id)
        if target:
            stmt = stmt.where(AuditLog.target == target)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        stmt = apply_pagination(stmt.order_by(AuditLog.timestamp.desc()), limit, offset)
        return list(db.scalars(stmt).all())

    @staticmethod
    def recent_for_target(
        db: Session, target: str, admin_id: str, limit: int = 5
    ) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.target == target, AuditLog.admin_id == admin_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        return list(db.scalars(stmt).all())


audit_logs = AuditLogs()
