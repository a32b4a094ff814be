"""
Shipping Calculator (Domain Logic).

Prices an order's delivery: resolves the zone, groups items by hub, prices
each group from its governing rate and sums the rounded group costs.
Pure read/compute; callers persist the result.
"""

import logging
from collections import OrderedDict
from typing import List, Optional

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.domain.shipping.rate_lookup import RateLookup, price_group
from fulfillment_engine.app.domain.shipping.zone_resolver import ZoneResolver
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.shipping import (
    HubShippingBreakdown, ShippingCalculationRequest, ShippingEstimate, ShippingItem
)

logger = logging.getLogger(__name__)

DEFAULT_HUB_NAME = "Default Hub"
UNKNOWN_HUB_NAME = "Unknown Hub"


def group_items_by_hub(items: List[ShippingItem]) -> "OrderedDict[Optional[int], List[ShippingItem]]":
    """Stable grouping by hub id; items without a hub share the None group."""
    groups: "OrderedDict[Optional[int], List[ShippingItem]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.hub_id, []).append(item)
    return groups


def total_weight(items: List[ShippingItem]) -> float:
    return sum((item.weight or 0) * item.quantity for item in items)


class ShippingCalculator:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options
        self.zones = ZoneResolver(repository, options)
        self.rates = RateLookup(repository, options)

    async def calculate(self, request: ShippingCalculationRequest) -> ShippingEstimate:
        """
        Calculate the shipping fee for an order.
        
        Flow:
        1. Resolve zone (ZoneNotFound aborts)
        2. Group items by hub
        3. Per group: weight, governing rate (RateNotFound aborts), cost
        4. Free-shipping waiver per group, 2 dp rounding, total
        """
        zone = await self.zones.resolve(request.delivery_state, request.delivery_city)
        order_value = request.declared_value()
        
        groups = group_items_by_hub(request.items)
        hubs = await self.repository.get_hubs(groups.keys())
        
        breakdown: List[HubShippingBreakdown] = []
        for hub_id, hub_items in groups.items():
            weight = total_weight(hub_items)
            rate = await self.rates.resolve(zone, hub_id, weight_kg=weight)
            cost = price_group(rate, weight, order_value)
            
            if hub_id is None:
                hub_name = DEFAULT_HUB_NAME
            else:
                hub = hubs.get(hub_id)
                hub_name = hub.name if hub else UNKNOWN_HUB_NAME
            
            breakdown.append(HubShippingBreakdown(
                hub_id=hub_id,
                hub_name=hub_name,
                shipping_cost=cost,
                item_count=len(hub_items),
                total_weight_kg=round(weight, 3),
                rate_id=rate.id,
            ))
        
        total_fee = round(sum(group.shipping_cost for group in breakdown), 2)
        
        logger.info(
            "Shipping calculated",
            extra={"zone": zone.name, "groups": len(breakdown), "total_shipping_fee": total_fee}
        )
        
        return ShippingEstimate(
            total_shipping_fee=total_fee,
            zone_id=zone.id,
            zone_name=zone.name,
            estimated_delivery_days=self.zones.estimated_delivery_days(zone),
            breakdown=breakdown,
        )

