from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permission
from app.schemas.billing import WebhookEventRead
from app.schemas.common import ListResponse
from app.schemas.polar import AuditLogRead
from app.services.audit import audit_logs
from app.services.billing import webhook_events
from app.services.permissions import Permission
from app.services.response import list_response

router = APIRouter(tags=["audit"])


@router.get(
    "/audit-logs",
    response_model=ListResponse[AuditLogRead],
    dependencies=[Depends(require_permission(Permission.view_audit_logs))],
)
def list_audit_logs(
    actor_id: str | None = None,
    target: str | None = None,
    action: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items = audit_logs.list(db, actor_id, target, action, limit, offset)
    return list_response(items, limit, offset)


@router.get(
    "/webhook-events",
    response_model=ListResponse[WebhookEventRead],
    dependencies=[Depends(require_permission(Permission.view_subscriptions))],
)
def list_webhook_events(
    type: str | None = None,
    polar_event_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items = webhook_events.list(db, type, polar_event_id, limit, offset)
    return list_response(items, limit, offset)
