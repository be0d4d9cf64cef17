"""Tests for audit-log and webhook-event listings."""

import json


def test_audit_logs_list_actions(client, admin_headers):
    client.post("/products", json={"name": "Audited"}, headers=admin_headers)

    response = client.get("/audit-logs?target=product", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["items"][0]["action"] == "create_product"


def test_audit_logs_need_permission(client, support_headers):
    response = client.get("/audit-logs", headers=support_headers)
    assert response.status_code == 403
    assert response.json()["code"] == "access_denied"


def test_webhook_events_listing(client, admin_headers, sign_webhook):
    body = json.dumps({"type": "order.created", "data": {"id": "ord_1"}})
    client.post("/payments/webhook", content=body, headers=sign_webhook(body))

    response = client.get(
        "/webhook-events?type=order.created", headers=admin_headers
    )

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["polar_event_id"] for item in items] == ["ord_1"]


def test_webhook_events_readable_by_support(client, support_headers):
    response = client.get("/api/v1/webhook-events", headers=support_headers)
    assert response.status_code == 200
    assert response.json()["items"] == []
