"""Polar webhook and checkout API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.metrics import WEBHOOK_REJECTIONS
from app.schemas.billing import CheckoutCreate, CheckoutRead
from app.services.billing import EventReconciler, checkouts
from app.services.webhook_verifier import (
    WebhookConfigError,
    WebhookVerificationError,
    WebhookVerifier,
    build_webhook_verifier,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


def get_webhook_verifier() -> WebhookVerifier:
    return build_webhook_verifier()


def get_event_reconciler() -> EventReconciler:
    return EventReconciler()


@router.post("/webhook")
async def polar_webhook(
    request: Request,
    db: Session = Depends(get_db),
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    reconciler: EventReconciler = Depends(get_event_reconciler),
) -> dict:
    """Handle Polar webhook: no auth required, signature verified."""
    body = await request.body()
    try:
        payload = verifier.verify(body, dict(request.headers))
    except WebhookVerificationError:
        WEBHOOK_REJECTIONS.labels("signature").inc()
        raise HTTPException(status_code=403, detail="Webhook verification failed")
    except WebhookConfigError as exc:
        WEBHOOK_REJECTIONS.labels("not_configured").inc()
        logger.error("Cannot verify webhook: %s", exc)
        raise HTTPException(status_code=400, detail="Webhook failed")
    except ValueError:
        WEBHOOK_REJECTIONS.labels("invalid_json").inc()
        raise HTTPException(status_code=400, detail="Webhook failed")

    try:
        reconciler.handle_event(db, payload)
    except Exception:
        WEBHOOK_REJECTIONS.labels("processing").inc()
        logger.exception(
            "Webhook processing failed",
            extra={"event_type": str(payload.get("type"))},
        )
        raise HTTPException(status_code=400, detail="Webhook failed")

    return {"message": "Webhook received!"}


@router.post("/checkout", response_model=CheckoutRead)
def create_checkout(payload: CheckoutCreate, db: Session = Depends(get_db)):
    return checkouts.create_session(db, payload.user_id, payload.price_id)
