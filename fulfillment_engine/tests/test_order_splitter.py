"""
Order splitting tests.

One sub-order per (hub, vendor) group, even fee allocation, subtotal
conservation and the initial pending tracking event.
"""

import pytest

from fulfillment_engine.app.core.exceptions import DuplicateOrder, ValidationError, ZoneNotFound
from fulfillment_engine.app.domain.orders.order_splitter import (
    INITIAL_EVENT_DESCRIPTION, INITIAL_EVENT_LOCATION, OrderSplitter,
    allocate_shipping_fee, group_items, per_sub_order_costs
)
from fulfillment_engine.app.domain.orders.order_service import shipping_request_for
from fulfillment_engine.app.domain.shipping.calculator import ShippingCalculator
from fulfillment_engine.app.models.enums import OrderStatus, SubOrderStatus, TrackingSource
from fulfillment_engine.app.schemas.orders import OrderItemIn
from fulfillment_engine.app.schemas.shipping import HubShippingBreakdown, ShippingEstimate


def _three_group_items(network):
    return [
        {"product_id": "P-1", "hub_id": network.lagos.id, "vendor_id": "V-1",
         "quantity": 1, "unit_price": 10000, "weight": 1.0},
        {"product_id": "P-2", "hub_id": network.lagos.id, "vendor_id": "V-2",
         "quantity": 2, "unit_price": 2500, "weight": 0.5},
        {"product_id": "P-3", "hub_id": network.warri.id, "vendor_id": "V-1",
         "quantity": 1, "unit_price": 7000, "weight": 2.0},
        {"product_id": "P-4", "hub_id": network.lagos.id, "vendor_id": "V-1",
         "quantity": 3, "unit_price": 1000, "weight": 0.2},
    ]


def test_allocate_shipping_fee_even_split():
    assert allocate_shipping_fee(3000, 3) == 1000
    assert allocate_shipping_fee(1000, 3) == 333.33
    assert allocate_shipping_fee(500, 0) == 0.0


def test_group_items_by_hub_and_vendor():
    items = [
        OrderItemIn(product_id="A", hub_id=1, vendor_id="V-1", quantity=1, unit_price=1),
        OrderItemIn(product_id="B", hub_id=1, vendor_id="V-2", quantity=1, unit_price=1),
        OrderItemIn(product_id="C", hub_id=1, vendor_id="V-1", quantity=1, unit_price=1),
    ]
    groups = group_items(items)
    assert list(groups.keys()) == [(1, "V-1"), (1, "V-2")]
    assert [item.product_id for item in groups[(1, "V-1")]] == ["A", "C"]


def test_per_sub_order_costs_shares_hub_cost():
    estimate = ShippingEstimate(
        total_shipping_fee=1500,
        zone_id=1,
        zone_name="South-West",
        estimated_delivery_days=2,
        breakdown=[
            HubShippingBreakdown(hub_id=1, hub_name="A", shipping_cost=1000, item_count=2, total_weight_kg=1, rate_id=1),
            HubShippingBreakdown(hub_id=2, hub_name="B", shipping_cost=500, item_count=1, total_weight_kg=1, rate_id=2),
        ],
    )
    costs = per_sub_order_costs([(1, "V-1"), (1, "V-2"), (2, "V-1")], estimate)
    assert costs == {(1, "V-1"): 500, (1, "V-2"): 500, (2, "V-1"): 500}
    assert per_sub_order_costs([(1, "V-1")], None) == {(1, "V-1"): None}


@pytest.mark.asyncio
async def test_split_creates_one_sub_order_per_group(network, repository, options, order_factory):
    order_in = order_factory(
        delivery_state="Lagos", delivery_city="Ikeja", shipping_fee_paid=3000,
        items=_three_group_items(network)
    )
    result = await OrderSplitter(repository, options).split_order(order_in)

    assert result.order.overall_status == OrderStatus.PROCESSING
    assert result.order.delivery_zone_id == network.south_west.id
    assert len(result.sub_orders) == 3
    keys = [(s.hub_id, s.vendor_id) for s in result.sub_orders]
    assert keys == [
        (network.lagos.id, "V-1"),
        (network.lagos.id, "V-2"),
        (network.warri.id, "V-1"),
    ]

    first = result.sub_orders[0]
    assert [item["product_id"] for item in first.items] == ["P-1", "P-4"]
    assert first.subtotal == 13000
    assert all(s.status == SubOrderStatus.PENDING for s in result.sub_orders)
    assert all(s.allocated_shipping_fee == 1000 for s in result.sub_orders)


@pytest.mark.asyncio
async def test_uneven_fee_split_stays_within_rounding(network, repository, options, order_factory):
    order_in = order_factory(delivery_state="Lagos", shipping_fee_paid=1000, items=_three_group_items(network))
    result = await OrderSplitter(repository, options).split_order(order_in)

    stored = await repository.list_sub_orders(result.order.id)
    fees = [s.allocated_shipping_fee for s in stored]
    assert fees == [333.33, 333.33, 333.33]
    assert abs(sum(fees) - result.order.shipping_fee_paid) <= 0.01 * len(stored)


@pytest.mark.asyncio
async def test_sub_order_subtotals_sum_to_order_subtotal(network, repository, options, order_factory):
    order_in = order_factory(delivery_state="Lagos", items=_three_group_items(network))
    result = await OrderSplitter(repository, options).split_order(order_in)

    assert result.order.subtotal == 25000
    assert round(sum(s.subtotal for s in result.sub_orders), 2) == result.order.subtotal
    assert result.order.total_amount == 25000 + order_in.shipping_fee_paid


@pytest.mark.asyncio
async def test_each_sub_order_gets_initial_event(network, repository, options, order_factory):
    order_in = order_factory(delivery_state="Lagos", items=_three_group_items(network))
    result = await OrderSplitter(repository, options).split_order(order_in)

    events = await repository.list_tracking_events(s.id for s in result.sub_orders)
    assert len(events) == 3
    assert {e.sub_order_id for e in events} == {s.id for s in result.sub_orders}
    for event in events:
        assert event.status == SubOrderStatus.PENDING
        assert event.description == INITIAL_EVENT_DESCRIPTION
        assert event.location == INITIAL_EVENT_LOCATION
        assert event.source == TrackingSource.SYSTEM


@pytest.mark.asyncio
async def test_shipping_cost_follows_estimate(network, repository, options, order_factory):
    order_in = order_factory(delivery_state="Lagos", items=_three_group_items(network))
    estimate = await ShippingCalculator(repository, options).calculate(shipping_request_for(order_in))
    result = await OrderSplitter(repository, options).split_order(order_in, estimate)

    lagos_cost = next(g.shipping_cost for g in estimate.breakdown if g.hub_id == network.lagos.id)
    lagos_sub_orders = [s for s in result.sub_orders if s.hub_id == network.lagos.id]
    assert all(s.shipping_cost == round(lagos_cost / 2, 2) for s in lagos_sub_orders)


@pytest.mark.asyncio
async def test_subtotal_mismatch_rejected_before_write(network, repository, options, order_factory):
    order_in = order_factory(subtotal=100)
    with pytest.raises(ValidationError):
        await OrderSplitter(repository, options).split_order(order_in)
    assert await repository.find_order_by_external_id(order_in.external_order_id) is None


@pytest.mark.asyncio
async def test_unknown_zone_writes_nothing(network, repository, options, order_factory):
    order_in = order_factory(delivery_state="Kano")
    with pytest.raises(ZoneNotFound):
        await OrderSplitter(repository, options).split_order(order_in)
    assert await repository.find_order_by_external_id(order_in.external_order_id) is None


@pytest.mark.asyncio
async def test_duplicate_external_order_id(network, repository, options, order_factory):
    splitter = OrderSplitter(repository, options)
    first = await splitter.split_order(order_factory())
    with pytest.raises(DuplicateOrder) as exc_info:
        await splitter.split_order(order_factory())
    assert exc_info.value.details["order_id"] == first.order.id
