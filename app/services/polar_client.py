"""Polar.sh REST API client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

POLAR_API_BASE = "https://api.polar.sh/v1"
DEFAULT_PAGE_SIZE = 50


class PolarConfigError(RuntimeError):
    """Provider credentials are missing; raised before any network call."""


class PolarAPIError(Exception):
    def __init__(self, status_code: int, body: str, message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Polar API error: {status_code} {body}")


@dataclass(frozen=True)
class BillingProviderConfig:
    access_token: str = ""
    organization_id: str = ""
    webhook_secret: str = ""
    api_base: str = POLAR_API_BASE
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, s: Any = None) -> BillingProviderConfig:
        s = s or settings
        return cls(
            access_token=s.polar_access_token,
            organization_id=s.polar_organization_id,
            webhook_secret=s.polar_webhook_secret,
            api_base=(s.polar_api_base or POLAR_API_BASE).rstrip("/"),
            page_size=s.polar_page_size,
            timeout=s.polar_timeout_seconds,
        )

    def has_api_credentials(self) -> bool:
        return bool(self.access_token and self.organization_id)

    def require_api(self) -> None:
        if not self.has_api_credentials():
            raise PolarConfigError("Polar.sh API credentials not configured")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for rate-limited and dropped requests.

    ``max_attempts`` counts the first try. A 429 waits for ``Retry-After``
    seconds when the header is present, otherwise ``default_delay``.
    """

    max_attempts: int = 3
    default_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def delay_for(self, response: httpx.Response) -> float:
        header = response.headers.get("retry-after")
        if header:
            try:
                return max(float(header), 0.0)
            except ValueError:
                logger.warning("Ignoring unparseable Retry-After header: %s", header)
        return self.default_delay


@dataclass
class Page:
    items: list[dict[str, Any]]
    has_more: bool


class PolarClient:
    """Thin wrapper around the Polar.sh REST API."""

    def __init__(
        self,
        config: BillingProviderConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or BillingProviderConfig.from_settings()
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.access_token}",
            "Content-Type": "application/json",
        }

    def is_configured(self) -> bool:
        return self.config.has_api_credentials()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        self.config.require_api()
        url = f"{self.config.api_base}{path}"
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                with httpx.Client(
                    timeout=self.config.timeout, transport=self._transport
                ) as client:
                    resp = client.request(
                        method, url, params=params, json=json, headers=self._headers()
                    )
            except httpx.TransportError as exc:
                if attempt >= policy.max_attempts:
                    logger.error(
                        "Polar %s %s failed after %d attempts: %s",
                        method,
                        path,
                        attempt,
                        exc,
                    )
                    raise
                logger.warning(
                    "Polar %s %s transport error (attempt %d): %s",
                    method,
                    path,
                    attempt,
                    exc,
                )
                policy.sleep(policy.default_delay)
                continue

            if resp.status_code == 429 and attempt < policy.max_attempts:
                delay = policy.delay_for(resp)
                logger.warning(
                    "Polar rate limited on %s, retrying in %.1fs (attempt %d)",
                    path,
                    delay,
                    attempt,
                )
                policy.sleep(delay)
                continue

            if resp.is_error:
                logger.error(
                    "Polar %s %s returned %s", method, path, resp.status_code
                )
                raise PolarAPIError(resp.status_code, resp.text)
            return resp.json()

    def _page(self, path: str, page: int, limit: int, **params: Any) -> Page:
        data = self._request(
            "GET",
            path,
            params={
                "organization_id": self.config.organization_id,
                "page": page,
                "limit": limit,
                **params,
            },
        )
        total = (data.get("pagination") or {}).get("total_count") or 0
        return Page(items=data.get("items") or [], has_more=total > page * limit)

    # ── Subscriptions & customers ────────────────────────

    def fetch_subscriptions(self, page: int = 1, limit: int | None = None) -> Page:
        return self._page("/subscriptions", page, limit or self.config.page_size)

    def fetch_customers(self, page: int = 1, limit: int | None = None) -> Page:
        return self._page("/customers", page, limit or self.config.page_size)

    # ── Products ─────────────────────────────────────────

    def fetch_products(self, include_archived: bool = False) -> list[dict[str, Any]]:
        """Return every product of the organization, walking all pages."""
        extra = {} if include_archived else {"is_archived": "false"}
        products: list[dict[str, Any]] = []
        page = 1
        while True:
            result = self._page(
                "/products", page, self.config.page_size, **extra
            )
            products.extend(result.items)
            if not result.has_more:
                return products
            page += 1

    def get_product(self, product_id: str) -> dict[str, Any]:
        result: dict[str, Any] = self._request("GET", f"/products/{product_id}")
        return result

    def get_organization(self) -> dict[str, Any]:
        result: dict[str, Any] = self._request(
            "GET", f"/organizations/{self.config.organization_id}"
        )
        return result

    # ── Checkout ─────────────────────────────────────────

    def create_checkout(
        self,
        product_price_id: str,
        customer_email: str,
        success_url: str,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Open a hosted checkout for the product that owns ``product_price_id``."""
        product_id = None
        for product in self.fetch_products():
            if any(
                price.get("id") == product_price_id
                for price in product.get("prices") or []
            ):
                product_id = product.get("id")
                break
        if not product_id:
            raise ValueError(f"Product not found for price ID: {product_price_id}")

        payload = {
            "products": [product_id],
            "success_url": success_url,
            "customer_email": customer_email,
            "metadata": {**(metadata or {}), "priceId": product_price_id},
        }
        result: dict[str, Any] = self._request("POST", "/checkouts", json=payload)
        logger.info("Created Polar checkout: %s", result.get("id"))
        return result


def build_polar_client() -> PolarClient:
    return PolarClient(BillingProviderConfig.from_settings())
