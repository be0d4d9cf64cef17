"""Standard Webhooks signature verification for Polar deliveries."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping
from typing import Any

from standardwebhooks import Webhook, WebhookVerificationError

from app.services.polar_client import BillingProviderConfig

logger = logging.getLogger(__name__)

__all__ = [
    "WebhookConfigError",
    "WebhookVerificationError",
    "WebhookVerifier",
    "build_webhook_verifier",
]


class WebhookConfigError(RuntimeError):
    """The webhook signing secret is not configured."""


class WebhookVerifier:
    """Checks the ``webhook-id``/``webhook-timestamp``/``webhook-signature`` triple.

    Polar hands out the signing secret as plain text while the Standard
    Webhooks scheme expects a base64 key, so the secret is encoded first.
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def is_configured(self) -> bool:
        return bool(self._secret)

    def _webhook(self) -> Webhook:
        if not self._secret:
            raise WebhookConfigError("POLAR_WEBHOOK_SECRET is not configured")
        return Webhook(base64.b64encode(self._secret.encode()).decode())

    def verify(self, body: bytes | str, headers: Mapping[str, str]) -> dict[str, Any]:
        """Return the decoded payload or raise ``WebhookVerificationError``."""
        webhook = self._webhook()
        normalized = {key.lower(): value for key, value in headers.items()}
        try:
            webhook.verify(body, normalized)
        except WebhookVerificationError:
            logger.warning(
                "Webhook signature rejected",
                extra={"webhook_id": normalized.get("webhook-id")},
            )
            raise
        except json.JSONDecodeError:
            # Signature matched but the body is not JSON.
            raise
        except ValueError as exc:
            # Malformed signature entries ("v1" without a comma, bad base64).
            logger.warning("Malformed webhook signature header: %s", exc)
            raise WebhookVerificationError("Malformed signature header") from exc
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("Webhook payload must be a JSON object")
        return payload


def build_webhook_verifier(config: BillingProviderConfig | None = None) -> WebhookVerifier:
    config = config or BillingProviderConfig.from_settings()
    return WebhookVerifier(config.webhook_secret)
