"""Tests for the Polar.sh REST client."""

import json

import httpx
import pytest

from app.services.polar_client import (
    BillingProviderConfig,
    PolarAPIError,
    PolarClient,
    PolarConfigError,
    RetryPolicy,
)

CONFIG = BillingProviderConfig(
    access_token="polar_at_test",
    organization_id="org_1",
    api_base="https://polar.test/v1",
    page_size=2,
)


class _Recorder:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(responses, sleeps=None, config=CONFIG):
    recorder = _Recorder(responses)
    sleeps = sleeps if sleeps is not None else []
    client = PolarClient(
        config,
        retry_policy=RetryPolicy(sleep=sleeps.append),
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


def _page(items, total):
    return httpx.Response(
        200, json={"items": items, "pagination": {"total_count": total, "max_page": 1}}
    )


def test_fetch_subscriptions_sends_org_paging_and_auth():
    client, recorder = _client([_page([{"id": "sub_1"}], 1)])
    page = client.fetch_subscriptions(page=1)

    assert [item["id"] for item in page.items] == ["sub_1"]
    assert page.has_more is False
    request = recorder.requests[0]
    assert request.url.path == "/v1/subscriptions"
    assert request.url.params["organization_id"] == "org_1"
    assert request.url.params["page"] == "1"
    assert request.url.params["limit"] == "2"
    assert request.headers["authorization"] == "Bearer polar_at_test"


def test_has_more_follows_total_count():
    client, _ = _client([_page([{"id": "a"}, {"id": "b"}], 5)])
    assert client.fetch_customers(page=2).has_more is True

    client, _ = _client([_page([{"id": "e"}], 5)])
    assert client.fetch_customers(page=3).has_more is False


def test_rate_limit_waits_retry_after_then_succeeds():
    sleeps: list[float] = []
    client, recorder = _client(
        [
            httpx.Response(429, headers={"Retry-After": "2"}),
            _page([{"id": "sub_1"}], 1),
        ],
        sleeps,
    )
    page = client.fetch_subscriptions()

    assert page.items == [{"id": "sub_1"}]
    assert sleeps == [2.0]
    assert len(recorder.requests) == 2


def test_rate_limit_without_header_uses_default_delay():
    sleeps: list[float] = []
    client, _ = _client([httpx.Response(429), _page([], 0)], sleeps)
    client.fetch_subscriptions()
    assert sleeps == [1.0]


def test_rate_limit_exhausts_retry_budget():
    sleeps: list[float] = []
    client, recorder = _client(
        [httpx.Response(429, text="slow down") for _ in range(3)], sleeps
    )

    with pytest.raises(PolarAPIError) as exc_info:
        client.fetch_subscriptions()

    assert exc_info.value.status_code == 429
    assert len(recorder.requests) == 3
    assert len(sleeps) == 2


def test_server_error_is_not_retried():
    client, recorder = _client([httpx.Response(500, text="boom")])

    with pytest.raises(PolarAPIError) as exc_info:
        client.get_organization()

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "boom"
    assert len(recorder.requests) == 1


def test_transport_error_is_retried():
    sleeps: list[float] = []
    client, recorder = _client(
        [httpx.ConnectError("refused"), httpx.Response(200, json={"name": "Acme"})],
        sleeps,
    )
    assert client.get_organization() == {"name": "Acme"}
    assert len(recorder.requests) == 2
    assert sleeps == [1.0]


def test_transport_error_propagates_after_budget():
    client, _ = _client([httpx.ConnectError("refused") for _ in range(3)])
    with pytest.raises(httpx.ConnectError):
        client.get_organization()


def test_missing_credentials_raise_before_any_request():
    client, recorder = _client(
        [], config=BillingProviderConfig(api_base="https://polar.test/v1")
    )
    assert client.is_configured() is False
    with pytest.raises(PolarConfigError):
        client.fetch_subscriptions()
    assert recorder.requests == []


def test_fetch_products_walks_all_pages_and_hides_archived():
    client, recorder = _client(
        [
            _page([{"id": "prod_1"}, {"id": "prod_2"}], 3),
            _page([{"id": "prod_3"}], 3),
        ]
    )
    products = client.fetch_products()

    assert [p["id"] for p in products] == ["prod_1", "prod_2", "prod_3"]
    assert [r.url.params["page"] for r in recorder.requests] == ["1", "2"]
    assert recorder.requests[0].url.params["is_archived"] == "false"


def test_create_checkout_resolves_product_from_price():
    client, recorder = _client(
        [
            _page(
                [
                    {"id": "prod_a", "prices": [{"id": "price_x"}]},
                    {"id": "prod_b", "prices": [{"id": "price_y"}]},
                ],
                2,
            ),
            httpx.Response(201, json={"id": "chk_1", "url": "https://pay.test/chk_1"}),
        ]
    )
    checkout = client.create_checkout(
        "price_y",
        customer_email="jane@example.com",
        success_url="https://app.example.com/success",
        metadata={"userId": "user_1"},
    )

    assert checkout["url"] == "https://pay.test/chk_1"
    post = recorder.requests[1]
    assert post.method == "POST"
    assert post.url.path == "/v1/checkouts"
    body = json.loads(post.content)
    assert body["products"] == ["prod_b"]
    assert body["customer_email"] == "jane@example.com"
    assert body["metadata"] == {"userId": "user_1", "priceId": "price_y"}


def test_create_checkout_unknown_price():
    client, recorder = _client([_page([{"id": "prod_a", "prices": []}], 1)])
    with pytest.raises(ValueError, match="price_missing"):
        client.create_checkout("price_missing", "a@b.c", "https://x/success")
    assert len(recorder.requests) == 1


def test_config_from_settings_strips_trailing_slash(settings, monkeypatch):
    monkeypatch.setattr(settings, "polar_api_base", "https://polar.test/v1/")
    config = BillingProviderConfig.from_settings(settings)
    assert config.api_base == "https://polar.test/v1"
    assert config.has_api_credentials() is True
