"""
Shipping Rate Resolver.

Responsible for determining the applicable shipping rate for a hub group.
Follows priority:
1. Highest `priority` among active rates for the zone
2. Hub-specific over zone-wide rows, courier-specific over unscoped rows
"""

from typing import Optional

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import RateNotFound
from fulfillment_engine.app.models.shipping_rate import ShippingRate
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository


class RateLookup:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options

    async def resolve(
        self,
        zone: Zone,
        hub_id: Optional[int],
        courier_id: Optional[int] = None,
        weight_kg: Optional[float] = None
    ) -> ShippingRate:
        """
        Find the governing rate for (zone, hub[, courier]) at this weight.
        
        Raises:
            RateNotFound: If no active rate applies. No fallback is substituted.
        """
        rate = await self.repository.find_active_rate(zone.id, hub_id, courier_id, weight_kg)
        if rate is None:
            raise RateNotFound(zone.name, hub_id)
        return rate


def price_group(rate: ShippingRate, total_weight_kg: float, order_value: float) -> float:
    """
    Cost for one hub group: flat + per_kg × weight, waived entirely when the
    order value reaches the rate's free-shipping threshold. Rounded to 2 dp.
    """
    if rate.free_shipping_threshold and order_value >= rate.free_shipping_threshold:
        return 0.0
    cost = rate.flat_rate + (rate.per_kg_rate or 0) * total_weight_kg
    return round(cost, 2)
