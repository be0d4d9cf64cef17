import logging
from collections.abc import Callable

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import User
from app.services.polar_client import PolarClient, build_polar_client

logger = logging.getLogger(__name__)


class Checkouts:
    def __init__(self, client_factory: Callable[[], PolarClient] = build_polar_client) -> None:
        self.client_factory = client_factory

    @staticmethod
    def success_url() -> str:
        base = (settings.frontend_url or "http://localhost:5173").rstrip("/")
        return f"{base}/success"

    def create_session(self, db: Session, user_id: str, price_id: str) -> dict[str, str | None]:
        user = db.scalars(
            select(User).where(User.token_identifier == user_id).limit(1)
        ).first()
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        if not user.email:
            raise HTTPException(status_code=400, detail="User has no email address")
        try:
            checkout = self.client_factory().create_checkout(
                product_price_id=price_id,
                customer_email=user.email,
                success_url=self.success_url(),
                metadata={"userId": user.token_identifier},
            )
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        logger.info("Opened checkout for user %s", user.token_identifier)
        return {"url": checkout["url"], "checkout_id": checkout.get("id")}


checkouts = Checkouts()
