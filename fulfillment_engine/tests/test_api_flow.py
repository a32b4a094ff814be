"""
End-to-end API flow.

Storefront order → sub-orders with couriers → tracking → courier settlement,
plus cancellation, purge, error format and request tracing.
"""

import logging

import pytest

from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.services.audit import AuditAction, get_audit_trail


def _mixed_order(network):
    """Two hubs, three vendor groups, delivered to Lagos."""
    return {
        "external_order_id": "WEB-2001",
        "customer_name": "Tunde Bello",
        "customer_email": "Tunde@Example.com",
        "delivery_address": "4 Allen Avenue",
        "delivery_city": "Ikeja",
        "delivery_state": "Lagos",
        "shipping_fee_paid": 3000,
        "items": [
            {"product_id": "P-1", "hub_id": network.lagos.id, "vendor_id": "V-1", "quantity": 1, "unit_price": 8000, "weight": 1.0},
            {"product_id": "P-2", "hub_id": network.lagos.id, "vendor_id": "V-2", "quantity": 2, "unit_price": 3000, "weight": 0.5},
            {"product_id": "P-3", "hub_id": network.warri.id, "vendor_id": "V-1", "quantity": 1, "unit_price": 6000, "weight": 2.0},
        ],
    }


@pytest.mark.asyncio
async def test_health_and_root(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] is True

    response = await client.get("/")
    assert response.json()["health"] == "/health"


def test_importing_app_leaves_log_level_alone():
    assert logging.getLogger().level != logging.DEBUG


@pytest.mark.asyncio
async def test_order_lifecycle(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network), headers={"X-Actor": "storefront"})
    assert response.status_code == 201
    body = response.json()

    order_id = body["order"]["id"]
    assert body["order"]["overall_status"] == "processing"
    assert body["order"]["subtotal"] == 20000
    assert body["assignment_failures"] == []
    assert body["shipping"]["zone_name"] == "South-West"

    sub_orders = body["sub_orders"]
    assert len(sub_orders) == 3
    assert [s["allocated_shipping_fee"] for s in sub_orders] == [1000, 1000, 1000]
    assert all(s["status"] == "assigned" for s in sub_orders)
    couriers = {s["hub_id"]: s["courier_id"] for s in sub_orders}
    assert couriers == {network.lagos.id: network.fez.id, network.warri.id: network.gigl.id}

    # Lagos group: 1000 + 100 x 2kg, shared by its two sub-orders
    lagos = [s for s in sub_orders if s["hub_id"] == network.lagos.id]
    assert [s["shipping_cost"] for s in lagos] == [600, 600]

    for sub_order in sub_orders:
        response = await client.post(f"/v1/sub-orders/{sub_order['id']}/tracking-events", json={"status": "in_transit"})
        assert response.status_code == 201

    response = await client.get(f"/v1/orders/{order_id}")
    assert response.json()["order"]["overall_status"] == "shipped"

    warri = next(s for s in sub_orders if s["hub_id"] == network.warri.id)
    response = await client.post("/v1/webhooks/courier", json={
        "tracking_number": warri["tracking_number"],
        "status": "Delivered",
        "location": "Ikeja",
    })
    assert response.json()["processed"] is True

    response = await client.get(f"/v1/orders/{order_id}/tracking")
    tracking = response.json()
    warri_tracking = next(t for t in tracking["sub_orders"] if t["sub_order"]["id"] == warri["id"])
    assert [e["status"] for e in warri_tracking["events"]] == ["delivered", "in_transit", "assigned", "pending"]
    assert warri_tracking["sub_order"]["delivered_at"] is not None

    response = await client.get(f"/v1/public/orders/{order_id}/tracking", params={"email": "tunde@example.com"})
    assert response.status_code == 200
    response = await client.get(f"/v1/public/orders/{order_id}/tracking", params={"email": "someone@else.com"})
    assert response.status_code == 404

    today = utcnow().date().isoformat()
    response = await client.post("/v1/settlements", json={
        "courier_id": network.gigl.id, "start_date": today, "end_date": today
    })
    assert response.status_code == 201
    settlement = response.json()
    assert settlement["shipment_count"] == 1
    assert settlement["status"] == "pending"

    # Batched but unpaid shipments are still owed
    response = await client.get("/v1/settlements/pending-payments")
    owed = {p["courier_code"]: p["total_amount_due"] for p in response.json()}
    assert owed == {"FEZ": 1200, "GIGL": 2000}

    response = await client.post(f"/v1/settlements/{settlement['id']}/approve", json={"approved_by": "finance"})
    assert response.json()["status"] == "approved"

    response = await client.post(f"/v1/settlements/{settlement['id']}/mark-paid", json={"payment_reference": "TRF-9"})
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    response = await client.get(f"/v1/settlements/{settlement['id']}")
    detail = response.json()
    assert [item["sub_order_id"] for item in detail["items"]] == [warri["id"]]

    response = await client.get("/v1/settlements/stats", params={"courier_id": network.gigl.id})
    assert response.json()["paid_amount"] == warri["shipping_cost"]

    response = await client.get("/v1/settlements", params={"status": "paid"})
    assert [s["id"] for s in response.json()] == [settlement["id"]]

    # Settled sub-orders pin the order
    response = await client.delete(f"/v1/orders/{order_id}")
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_ORDER_SETTLED"


@pytest.mark.asyncio
async def test_duplicate_order_is_rejected(client, network):
    await client.post("/v1/orders", json=_mixed_order(network))
    response = await client.post("/v1/orders", json=_mixed_order(network))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_DUPLICATE_ORDER"


@pytest.mark.asyncio
async def test_cancel_order(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network))
    order_id = response.json()["order"]["id"]

    response = await client.post(f"/v1/orders/{order_id}/cancel", json={"reason": "Customer request"})
    assert response.status_code == 200
    assert response.json()["overall_status"] == "cancelled"

    response = await client.get(f"/v1/orders/{order_id}/tracking")
    for entry in response.json()["sub_orders"]:
        assert entry["sub_order"]["status"] == "cancelled"
        assert entry["events"][0]["description"] == "Order cancelled: Customer request"
        assert entry["events"][0]["source"] == "operator"

    response = await client.post(f"/v1/orders/{order_id}/cancel")
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_ORDER_NOT_CANCELLABLE"


@pytest.mark.asyncio
async def test_cancel_refused_once_picked_up(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network))
    body = response.json()
    picked = body["sub_orders"][0]["id"]
    await client.post(f"/v1/sub-orders/{picked}/tracking-events", json={"status": "picked_up"})

    response = await client.post(f"/v1/orders/{body['order']['id']}/cancel")
    assert response.status_code == 409
    assert response.json()["details"]["sub_order_ids"] == [picked]


@pytest.mark.asyncio
async def test_purge_order(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network))
    order_id = response.json()["order"]["id"]

    response = await client.delete(f"/v1/orders/{order_id}")
    assert response.status_code == 200
    assert response.json() == {"order_id": order_id, "deleted_sub_orders": 3}

    response = await client.get(f"/v1/orders/{order_id}")
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND"


@pytest.mark.asyncio
async def test_manual_assignment_endpoint(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network))
    sub_order = response.json()["sub_orders"][0]

    response = await client.post(f"/v1/sub-orders/{sub_order['id']}/assign-courier")
    assert response.status_code == 200
    assert response.json()["tracking_number"] == sub_order["tracking_number"]

    response = await client.post("/v1/sub-orders/9999/assign-courier")
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_SUB_ORDER_NOT_FOUND"


@pytest.mark.asyncio
async def test_unknown_zone_error_shape(client, network):
    order = _mixed_order(network)
    order["delivery_state"] = "Kano"
    response = await client.post("/v1/orders", json=order)

    assert response.status_code == 400
    assert response.json() == {
        "error_code": "ERR_ZONE_NOT_FOUND",
        "message": "Zone not found for state: Kano",
        "details": {"state": "Kano"},
    }


@pytest.mark.asyncio
async def test_request_validation_error_shape(client, network):
    response = await client.post("/v1/orders", json={"customer_name": "No items"})
    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "ERR_VALIDATION"
    assert body["details"]["errors"]


@pytest.mark.asyncio
async def test_correlation_id_round_trip(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "req-123"})
    assert response.headers["X-Correlation-ID"] == "req-123"
    assert "X-Process-Time" in response.headers

    response = await client.get("/health")
    assert response.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_actions_are_audited(client, network, db_session):
    response = await client.post("/v1/orders", json=_mixed_order(network), headers={"X-Actor": "storefront"})
    order_id = response.json()["order"]["id"]
    await client.post(f"/v1/orders/{order_id}/cancel")

    trail = await get_audit_trail(db_session, entity_type="order", entity_id=order_id)
    assert [entry.action for entry in trail] == [AuditAction.ORDER_CANCELLED, AuditAction.ORDER_INGESTED]
    assert trail[0].actor == "system"
    assert trail[1].actor == "storefront"
    assert trail[1].meta_data["external_order_id"] == "WEB-2001"


@pytest.mark.asyncio
async def test_activity_log_listing(client, network):
    response = await client.post("/v1/orders", json=_mixed_order(network), headers={"X-Actor": "storefront"})
    order_id = response.json()["order"]["id"]
    await client.post(f"/v1/orders/{order_id}/cancel", headers={"X-Actor": "ops-desk"})

    response = await client.get("/v1/activity-logs", params={"entity_type": "order", "entity_id": order_id})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [log["action"] for log in body["logs"]] == ["ORDER_CANCELLED", "ORDER_INGESTED"]
    assert body["logs"][0]["actor"] == "ops-desk"

    response = await client.get("/v1/activity-logs", params={"action": "ORDER_INGESTED", "limit": 1})
    assert response.json()["total"] == 1
    assert response.json()["logs"][0]["meta_data"]["external_order_id"] == "WEB-2001"


@pytest.mark.asyncio
async def test_notification_outbox_endpoints(client, network, order_factory):
    response = await client.post("/v1/orders", json=order_factory().model_dump(mode="json"))
    order_id = response.json()["order"]["id"]
    sub_order_id = response.json()["sub_orders"][0]["id"]
    await client.post(f"/v1/sub-orders/{sub_order_id}/tracking-events", json={"status": "delivered"})

    response = await client.get("/v1/notifications/outbox")
    assert response.status_code == 200
    pending = response.json()
    assert [(n["order_id"], n["new_status"], n["recipient"]) for n in pending] == [
        (order_id, "delivered", "ada@example.com")
    ]

    response = await client.post("/v1/notifications/outbox/mark-sent", json={"notification_ids": [pending[0]["id"]]})
    assert response.json() == {"updated": 1}
    assert (await client.get("/v1/notifications/outbox")).json() == []
