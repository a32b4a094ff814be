"""
Shipping Configuration API Endpoints.

Zones, hubs, couriers, hub-courier links and shipping rates.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fulfillment_engine.app.api.deps import get_actor, get_configuration_service
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.domain.configuration.configuration_service import ConfigurationService
from fulfillment_engine.app.schemas.configuration import (
    CourierCreate, CourierResponse, HubCourierCreate, HubCourierResponse, HubCreate, HubResponse,
    ShippingRateCreate, ShippingRateResponse, ZoneCreate, ZoneResponse, ZoneUpdate
)
from fulfillment_engine.app.services.audit import log_event, AuditAction

router = APIRouter(tags=["Configuration"])


def _link_response(link, courier) -> HubCourierResponse:
    return HubCourierResponse(
        link_id=link.id,
        hub_id=link.hub_id,
        courier_id=courier.id,
        courier_name=courier.name,
        courier_code=courier.code,
        is_primary=link.is_primary,
        priority=link.priority,
        is_active=courier.is_active,
    )


# Zones

@router.get("/zones", response_model=List[ZoneResponse])
async def list_zones(service: ConfigurationService = Depends(get_configuration_service)):
    """All shipping zones by name."""
    return await service.list_zones()


@router.post("/zones", response_model=ZoneResponse, status_code=status.HTTP_201_CREATED)
async def create_zone(
    data: ZoneCreate,
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Create a zone. 409 ERR_ZONE_OVERLAP if a state already has a zone."""
    zone = await service.create_zone(data)
    response = ZoneResponse.model_validate(zone)
    await log_event(
        db=db,
        action=AuditAction.ZONE_CREATED,
        actor=actor,
        entity_type="zone",
        entity_id=response.id,
        metadata={"name": response.name, "states": response.states}
    )
    return response


@router.patch("/zones/{zone_id}", response_model=ZoneResponse)
async def update_zone(
    data: ZoneUpdate,
    zone_id: int = Path(..., description="Zone ID"),
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    zone = await service.update_zone(zone_id, data)
    response = ZoneResponse.model_validate(zone)
    await log_event(
        db=db,
        action=AuditAction.ZONE_UPDATED,
        actor=actor,
        entity_type="zone",
        entity_id=zone_id,
        metadata=data.model_dump(exclude_unset=True)
    )
    return response


# Hubs

@router.get("/hubs", response_model=List[HubResponse])
async def list_hubs(service: ConfigurationService = Depends(get_configuration_service)):
    return await service.list_hubs()


@router.post("/hubs", response_model=HubResponse, status_code=status.HTTP_201_CREATED)
async def create_hub(
    data: HubCreate,
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    hub = await service.create_hub(data)
    response = HubResponse.model_validate(hub)
    await log_event(
        db=db,
        action=AuditAction.HUB_CREATED,
        actor=actor,
        entity_type="hub",
        entity_id=response.id,
        metadata={"name": response.name}
    )
    return response


@router.get("/hubs/{hub_id}/couriers", response_model=List[HubCourierResponse])
async def list_hub_couriers(
    hub_id: int = Path(..., description="Hub ID"),
    service: ConfigurationService = Depends(get_configuration_service)
):
    """Couriers linked to the hub, in assignment order."""
    return [_link_response(link, courier) for link, courier in await service.hub_couriers(hub_id)]


@router.post("/hubs/{hub_id}/couriers", response_model=HubCourierResponse, status_code=status.HTTP_201_CREATED)
async def link_hub_courier(
    data: HubCourierCreate,
    hub_id: int = Path(..., description="Hub ID"),
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Link a courier to a hub. 409 ERR_DUPLICATE_PRIMARY on a second primary."""
    link, courier = await service.link_courier(hub_id, data)
    response = _link_response(link, courier)
    await log_event(
        db=db,
        action=AuditAction.HUB_COURIER_LINKED,
        actor=actor,
        entity_type="hub",
        entity_id=hub_id,
        metadata={"courier_id": courier.id, "is_primary": data.is_primary, "priority": data.priority}
    )
    return response


# Couriers

@router.get("/couriers", response_model=List[CourierResponse])
async def list_couriers(service: ConfigurationService = Depends(get_configuration_service)):
    return await service.list_couriers()


@router.post("/couriers", response_model=CourierResponse, status_code=status.HTTP_201_CREATED)
async def create_courier(
    data: CourierCreate,
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    courier = await service.create_courier(data)
    response = CourierResponse.model_validate(courier)
    await log_event(
        db=db,
        action=AuditAction.COURIER_CREATED,
        actor=actor,
        entity_type="courier",
        entity_id=response.id,
        metadata={"code": response.code}
    )
    return response


# Rates

@router.get("/rates", response_model=List[ShippingRateResponse])
async def list_rates(
    zone_id: Optional[int] = Query(None),
    service: ConfigurationService = Depends(get_configuration_service)
):
    return await service.list_rates(zone_id)


@router.post("/rates", response_model=ShippingRateResponse, status_code=status.HTTP_201_CREATED)
async def create_rate(
    data: ShippingRateCreate,
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    rate = await service.create_rate(data)
    response = ShippingRateResponse.model_validate(rate)
    await log_event(
        db=db,
        action=AuditAction.RATE_CREATED,
        actor=actor,
        entity_type="shipping_rate",
        entity_id=response.id,
        metadata={"zone_id": response.zone_id, "hub_id": response.hub_id, "flat_rate": response.flat_rate}
    )
    return response


@router.post("/rates/{rate_id}/deactivate", response_model=ShippingRateResponse)
async def deactivate_rate(
    rate_id: int = Path(..., description="Shipping rate ID"),
    service: ConfigurationService = Depends(get_configuration_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Soft-disable a rate; rates are never deleted."""
    rate = await service.deactivate_rate(rate_id)
    response = ShippingRateResponse.model_validate(rate)
    await log_event(
        db=db,
        action=AuditAction.RATE_DEACTIVATED,
        actor=actor,
        entity_type="shipping_rate",
        entity_id=rate_id
    )
    return response
