"""
Shipping Configuration Service.

Operator-maintained reference data: zones, hubs, couriers, hub-courier
links and shipping rates. Integrity rules the engine relies on at runtime
are enforced here, when the data is written:
- no state belongs to two zones
- at most one primary courier per hub
- rates are soft-disabled, never deleted
"""

import logging
from typing import List, Optional, Tuple

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    DuplicateConfigurationError, DuplicatePrimaryCourierError, ResourceNotFoundError, ValidationError
)
from fulfillment_engine.app.domain.shipping.zone_resolver import ZoneResolver, normalize_states
from fulfillment_engine.app.models.courier import Courier
from fulfillment_engine.app.models.hub import Hub, HubCourier
from fulfillment_engine.app.models.shipping_rate import ShippingRate
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.configuration import (
    CourierCreate, HubCourierCreate, HubCreate, ShippingRateCreate, ZoneCreate, ZoneUpdate
)

logger = logging.getLogger(__name__)


class ConfigurationService:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options
        self.zones = ZoneResolver(repository, options)

    # Zones

    async def list_zones(self) -> List[Zone]:
        return await self.repository.list_zones(order_by_name=True)

    async def get_zone(self, zone_id: int) -> Zone:
        zone = await self.repository.get_zone(zone_id)
        if zone is None:
            raise ResourceNotFoundError("Zone", zone_id)
        return zone

    async def create_zone(self, data: ZoneCreate) -> Zone:
        states = normalize_states(data.states)
        if not states:
            raise ValidationError("A zone needs at least one state")

        for zone in await self.repository.list_zones():
            if zone.name.lower() == data.name.strip().lower():
                raise DuplicateConfigurationError("Zone", "name", data.name)
            if zone.code.lower() == data.code.strip().lower():
                raise DuplicateConfigurationError("Zone", "code", data.code)
        await self.zones.ensure_no_overlap(states)

        zone = Zone(
            name=data.name.strip(),
            code=data.code.strip().upper(),
            states=states,
            cities=data.cities,
            estimated_delivery_days=data.estimated_delivery_days,
        )
        await self.repository.insert_zone(zone)
        logger.info("Zone created", extra={"zone_id": zone.id, "zone": zone.name, "states": len(states)})
        return zone

    async def update_zone(self, zone_id: int, data: ZoneUpdate) -> Zone:
        zone = await self.get_zone(zone_id)
        changes = data.model_dump(exclude_unset=True)

        if "name" in changes:
            for other in await self.repository.list_zones():
                if other.id != zone_id and other.name.lower() == changes["name"].strip().lower():
                    raise DuplicateConfigurationError("Zone", "name", changes["name"])
            changes["name"] = changes["name"].strip()
        if "states" in changes:
            changes["states"] = normalize_states(changes["states"])
            if not changes["states"]:
                raise ValidationError("A zone needs at least one state")
            await self.zones.ensure_no_overlap(changes["states"], exclude_zone_id=zone_id)

        await self.repository.update_zone(zone, **changes)
        logger.info("Zone updated", extra={"zone_id": zone_id, "fields": sorted(changes)})
        return zone

    # Hubs and couriers

    async def list_hubs(self) -> List[Hub]:
        return await self.repository.list_hubs()

    async def get_hub(self, hub_id: int) -> Hub:
        hub = await self.repository.get_hub(hub_id)
        if hub is None:
            raise ResourceNotFoundError("Hub", hub_id)
        return hub

    async def create_hub(self, data: HubCreate) -> Hub:
        if data.code:
            for hub in await self.repository.list_hubs():
                if hub.code and hub.code.lower() == data.code.lower():
                    raise DuplicateConfigurationError("Hub", "code", data.code)
        hub = Hub(**data.model_dump(), is_active=True)
        await self.repository.insert_hub(hub)
        logger.info("Hub created", extra={"hub_id": hub.id, "hub": hub.name})
        return hub

    async def list_couriers(self) -> List[Courier]:
        return await self.repository.list_couriers()

    async def get_courier(self, courier_id: int) -> Courier:
        courier = await self.repository.get_courier(courier_id)
        if courier is None:
            raise ResourceNotFoundError("Courier", courier_id)
        return courier

    async def create_courier(self, data: CourierCreate) -> Courier:
        code = data.code.strip().upper()
        for courier in await self.repository.list_couriers():
            if courier.code.upper() == code:
                raise DuplicateConfigurationError("Courier", "code", data.code)
        courier = Courier(**data.model_dump(exclude={"code"}), code=code)
        await self.repository.insert_courier(courier)
        logger.info("Courier created", extra={"courier_id": courier.id, "code": code})
        return courier

    async def link_courier(self, hub_id: int, data: HubCourierCreate) -> Tuple[HubCourier, Courier]:
        """
        Link a courier to a hub.

        Raises:
            DuplicateConfigurationError: courier already linked to the hub.
            DuplicatePrimaryCourierError: hub already has a primary courier.
        """
        await self.get_hub(hub_id)
        courier = await self.get_courier(data.courier_id)

        for link, linked in await self.repository.find_hub_couriers(hub_id, active_only=False):
            if link.courier_id == courier.id:
                raise DuplicateConfigurationError("HubCourier", "courier_id", courier.id)
            if data.is_primary and link.is_primary:
                raise DuplicatePrimaryCourierError(hub_id, linked.id)

        link = HubCourier(
            hub_id=hub_id,
            courier_id=courier.id,
            is_primary=data.is_primary,
            priority=data.priority,
        )
        await self.repository.insert_hub_courier(link)
        logger.info(
            "Courier linked to hub",
            extra={"hub_id": hub_id, "courier_id": courier.id, "is_primary": data.is_primary, "priority": data.priority}
        )
        return link, courier

    async def hub_couriers(self, hub_id: int) -> List[Tuple[HubCourier, Courier]]:
        await self.get_hub(hub_id)
        return await self.repository.find_hub_couriers(hub_id, active_only=False)

    # Rates

    async def list_rates(self, zone_id: Optional[int] = None) -> List[ShippingRate]:
        return await self.repository.list_rates(zone_id)

    async def create_rate(self, data: ShippingRateCreate) -> ShippingRate:
        await self.get_zone(data.zone_id)
        if data.hub_id is not None:
            await self.get_hub(data.hub_id)
        if data.courier_id is not None:
            await self.get_courier(data.courier_id)
        if (
            data.min_weight_kg is not None
            and data.max_weight_kg is not None
            and data.min_weight_kg > data.max_weight_kg
        ):
            raise ValidationError(
                "min_weight_kg must not exceed max_weight_kg",
                details={"min_weight_kg": data.min_weight_kg, "max_weight_kg": data.max_weight_kg}
            )

        rate = ShippingRate(**data.model_dump(), is_active=True)
        await self.repository.insert_rate(rate)
        logger.info(
            "Shipping rate created",
            extra={"rate_id": rate.id, "zone_id": rate.zone_id, "hub_id": rate.hub_id, "priority": rate.priority}
        )
        return rate

    async def deactivate_rate(self, rate_id: int) -> ShippingRate:
        rate = await self.repository.get_rate(rate_id)
        if rate is None:
            raise ResourceNotFoundError("Shipping rate", rate_id)
        if rate.is_active:
            await self.repository.update_rate(rate, is_active=False)
            logger.info("Shipping rate deactivated", extra={"rate_id": rate_id})
        return rate
