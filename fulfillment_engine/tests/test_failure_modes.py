"""
Failure mode tests.

Partial writes must be visible to the caller: sequential ingest reports
what was persisted, transactional ingest leaves nothing behind, timeouts
surface as their own error and a half-applied payment can be resumed.
"""

import asyncio

import pytest

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    OperationTimeoutError, OrderPersistFailed, SettlementPaidPartially, SubOrderPersistFailed
)
from fulfillment_engine.app.core.reliability import run_with_timeout
from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.domain.billing.settlement_service import SettlementService
from fulfillment_engine.app.domain.orders.order_service import OrderService
from fulfillment_engine.app.domain.orders.order_splitter import OrderSplitter
from fulfillment_engine.app.domain.shipping.zone_resolver import ZoneResolver
from fulfillment_engine.app.domain.tracking.tracking_service import TrackingService
from fulfillment_engine.app.models.enums import SettlementStatus, SubOrderSettlementStatus, SubOrderStatus
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository

SEQUENTIAL = EngineOptions(transactional_order_ingest=False)


def _two_group_items(network):
    return [
        {"product_id": "P-1", "hub_id": network.warri.id, "vendor_id": "V-1", "quantity": 1, "unit_price": 1000},
        {"product_id": "P-2", "hub_id": network.warri.id, "vendor_id": "V-2", "quantity": 1, "unit_price": 2000},
    ]


@pytest.mark.asyncio
async def test_run_with_timeout_raises_operation_timeout():
    with pytest.raises(OperationTimeoutError) as exc_info:
        await run_with_timeout(asyncio.sleep(1), "slow_call", 0.01)
    assert exc_info.value.details == {"operation": "slow_call", "timeout_seconds": 0.01}


@pytest.mark.asyncio
async def test_run_with_timeout_without_limit():
    assert await run_with_timeout(asyncio.sleep(0, result="done"), "fast_call", None) == "done"


@pytest.mark.asyncio
async def test_sequential_sub_order_failure_keeps_main_order(network, repository, order_factory, mocker):
    mocker.patch.object(repository, "insert_sub_orders", side_effect=RuntimeError("disk full"))
    order_in = order_factory(items=_two_group_items(network))

    with pytest.raises(SubOrderPersistFailed) as exc_info:
        await OrderSplitter(repository, SEQUENTIAL).split_order(order_in)

    details = exc_info.value.details
    assert details["stage"] == "sub_orders"
    assert details["persisted_sub_order_ids"] == []
    assert [g["vendor_id"] for g in details["failed_groups"]] == ["V-1", "V-2"]
    assert details["cause"] == "disk full"

    order = await repository.find_order_by_external_id(order_in.external_order_id)
    assert order is not None
    assert order.id == details["order_id"]
    assert await repository.list_sub_orders(order.id) == []


@pytest.mark.asyncio
async def test_sequential_event_failure_reports_persisted_sub_orders(network, repository, order_factory, mocker):
    mocker.patch.object(repository, "insert_tracking_events", side_effect=RuntimeError("lock timeout"))
    order_in = order_factory(items=_two_group_items(network))

    with pytest.raises(SubOrderPersistFailed) as exc_info:
        await OrderSplitter(repository, SEQUENTIAL).split_order(order_in)

    details = exc_info.value.details
    assert details["stage"] == "tracking_events"
    sub_orders = await repository.list_sub_orders(details["order_id"])
    assert details["persisted_sub_order_ids"] == [s.id for s in sub_orders]
    assert len(sub_orders) == 2
    assert await repository.list_tracking_events(details["persisted_sub_order_ids"]) == []


@pytest.mark.asyncio
async def test_sequential_main_order_failure(network, repository, order_factory, mocker):
    mocker.patch.object(repository, "insert_order", side_effect=RuntimeError("connection reset"))

    with pytest.raises(OrderPersistFailed) as exc_info:
        await OrderSplitter(repository, SEQUENTIAL).split_order(order_factory())
    assert exc_info.value.details["rolled_back"] is False


@pytest.mark.asyncio
async def test_transactional_ingest_rolls_back_everything(network, repository, options, order_factory, mocker):
    mocker.patch.object(repository, "insert_tracking_events", side_effect=RuntimeError("lock timeout"))
    order_in = order_factory(items=_two_group_items(network))

    with pytest.raises(OrderPersistFailed) as exc_info:
        await OrderSplitter(repository, options).split_order(order_in)

    assert exc_info.value.details["rolled_back"] is True
    assert await repository.find_order_by_external_id(order_in.external_order_id) is None


@pytest.mark.asyncio
async def test_repository_call_times_out(network, db_session, options, mocker):
    async def slow_execute(*args, **kwargs):
        await asyncio.sleep(1)

    mocker.patch.object(db_session, "execute", side_effect=slow_execute)
    repository = FulfillmentRepository(db_session, timeout=0.01)

    with pytest.raises(OperationTimeoutError) as exc_info:
        await ZoneResolver(repository, options).resolve("Delta")
    assert exc_info.value.details["operation"] == "list_zones"
    assert exc_info.value.status_code == 504


@pytest.mark.asyncio
async def test_sequential_timeout_reports_partial_write(network, repository, order_factory, mocker):
    async def slow_insert(events):
        return await run_with_timeout(asyncio.sleep(1), "insert_tracking_events", 0.01)

    mocker.patch.object(repository, "insert_tracking_events", side_effect=slow_insert)

    with pytest.raises(SubOrderPersistFailed) as exc_info:
        await OrderSplitter(repository, SEQUENTIAL).split_order(order_factory(items=_two_group_items(network)))
    assert exc_info.value.details["stage"] == "tracking_events"
    assert "timed out" in exc_info.value.details["cause"]


@pytest.mark.asyncio
async def test_ingest_without_rate_still_splits(network, repository, options, order_factory):
    await repository.update_rate(network.warri_rate, is_active=False)

    result = await OrderService(repository, options).ingest(order_factory())

    assert result.shipping is None
    assert len(result.sub_orders) == 1
    assert result.sub_orders[0].shipping_cost is None
    assert result.sub_orders[0].status == SubOrderStatus.ASSIGNED


@pytest.mark.asyncio
async def test_ingest_collects_assignment_failures(network, repository, options, order_factory):
    items = [
        {"product_id": "P-1", "hub_id": network.warri.id, "vendor_id": "V-1", "quantity": 1, "unit_price": 1000},
        {"product_id": "P-2", "hub_id": None, "vendor_id": "V-2", "quantity": 1, "unit_price": 1000},
    ]
    result = await OrderService(repository, options).ingest(order_factory(delivery_state="Lagos", items=items))

    assert [s.status for s in result.sub_orders] == [SubOrderStatus.ASSIGNED, SubOrderStatus.PENDING]
    assert result.assignment_failures == [{
        "sub_order_id": result.sub_orders[1].id,
        "error_code": "ERR_MISSING_HUB",
        "message": f"Sub-order {result.sub_orders[1].id} has no hub assigned",
    }]


@pytest.mark.asyncio
async def test_partial_payment_can_be_resumed(network, repository, options, order_factory, mocker):
    orders = OrderService(repository, options)
    tracking = TrackingService(repository, options)
    sub_order_ids = []
    for external_order_id in ("WEB-1", "WEB-2"):
        result = await orders.ingest(order_factory(external_order_id=external_order_id))
        sub_order_ids.append(result.sub_orders[0].id)
        await tracking.record_tracking_event(result.sub_orders[0].id, SubOrderStatus.DELIVERED)

    service = SettlementService(repository, options)
    today = utcnow().date()
    settlement = await service.create_settlement(network.gigl.id, today, today)
    failing_id = sub_order_ids[1]

    original_update = repository.update_sub_order

    async def flaky_update(sub_order, **changes):
        if sub_order.id == failing_id:
            raise RuntimeError("row locked")
        return await original_update(sub_order, **changes)

    mocker.patch.object(repository, "update_sub_order", side_effect=flaky_update)

    with pytest.raises(SettlementPaidPartially) as exc_info:
        await service.mark_paid(settlement.id, payment_reference="TRF-77")
    assert exc_info.value.details["updated_sub_order_ids"] == [sub_order_ids[0]]
    assert exc_info.value.details["failed_sub_order_ids"] == [failing_id]

    stored = await repository.get_settlement(settlement.id)
    assert stored.status == SettlementStatus.PAID
    assert (await repository.get_sub_order(failing_id)).settlement_status == SubOrderSettlementStatus.PENDING

    mocker.stopall()
    await service.mark_paid(settlement.id, payment_reference="ignored")

    resynced = await repository.get_sub_order(failing_id)
    assert resynced.settlement_status == SubOrderSettlementStatus.PAID
    assert resynced.payment_reference == "TRF-77"


@pytest.mark.asyncio
async def test_partial_payment_api_error(client, network, order_factory, mocker):
    response = await client.post("/v1/orders", json=order_factory().model_dump(mode="json"))
    sub_order_id = response.json()["sub_orders"][0]["id"]
    await client.post(f"/v1/sub-orders/{sub_order_id}/tracking-events", json={"status": "delivered"})
    today = utcnow().date().isoformat()
    response = await client.post("/v1/settlements", json={
        "courier_id": network.gigl.id, "start_date": today, "end_date": today
    })
    settlement_id = response.json()["id"]

    mocker.patch.object(FulfillmentRepository, "update_sub_order", side_effect=RuntimeError("row locked"))
    response = await client.post(f"/v1/settlements/{settlement_id}/mark-paid", json={"payment_reference": "TRF-1"})

    assert response.status_code == 500
    body = response.json()
    assert body["error_code"] == "ERR_SETTLEMENT_PARTIAL"
    assert body["details"]["failed_sub_order_ids"] == [sub_order_id]
