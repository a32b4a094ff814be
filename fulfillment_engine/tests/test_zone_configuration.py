"""
Shipping configuration tests.

Zone overlap guard, duplicate detection, primary courier uniqueness and
rate deactivation, through both the service and the API.
"""

import pytest

from fulfillment_engine.app.core.exceptions import (
    DuplicateConfigurationError, DuplicatePrimaryCourierError, ResourceNotFoundError,
    ValidationError, ZoneOverlapError
)
from fulfillment_engine.app.domain.configuration.configuration_service import ConfigurationService
from fulfillment_engine.app.schemas.configuration import (
    CourierCreate, HubCourierCreate, HubCreate, ShippingRateCreate, ZoneCreate, ZoneUpdate
)


@pytest.mark.asyncio
async def test_create_zone_normalizes_input(network, repository, options):
    service = ConfigurationService(repository, options)
    zone = await service.create_zone(ZoneCreate(name=" North-Central ", code="nc", states=["Kwara", " kwara", "Niger"]))

    assert zone.name == "North-Central"
    assert zone.code == "NC"
    assert zone.states == ["Kwara", "Niger"]


@pytest.mark.asyncio
async def test_zone_states_may_not_overlap(network, repository, options):
    service = ConfigurationService(repository, options)
    with pytest.raises(ZoneOverlapError) as exc_info:
        await service.create_zone(ZoneCreate(name="Lagos Metro", code="LM", states=["LAGOS"]))
    assert exc_info.value.details["conflicting_zone"] == "South-West"


@pytest.mark.asyncio
async def test_zone_update_checks_other_zones_only(network, repository, options):
    service = ConfigurationService(repository, options)

    updated = await service.update_zone(network.south_west.id, ZoneUpdate(states=["Lagos", "Ogun", "Oyo"]))
    assert updated.states == ["Lagos", "Ogun", "Oyo"]

    with pytest.raises(ZoneOverlapError):
        await service.update_zone(network.south_west.id, ZoneUpdate(states=["Lagos", "Delta"]))


@pytest.mark.asyncio
async def test_duplicate_zone_name_and_code(network, repository, options):
    service = ConfigurationService(repository, options)
    with pytest.raises(DuplicateConfigurationError):
        await service.create_zone(ZoneCreate(name="south-south", code="X1", states=["Kogi"]))
    with pytest.raises(DuplicateConfigurationError):
        await service.create_zone(ZoneCreate(name="Elsewhere", code="ss", states=["Kogi"]))
    with pytest.raises(ValidationError):
        await service.create_zone(ZoneCreate(name="Blank", code="BL", states=["  "]))


@pytest.mark.asyncio
async def test_one_primary_courier_per_hub(network, repository, options):
    service = ConfigurationService(repository, options)
    courier = await service.create_courier(CourierCreate(name="Kwik", code="kwik"))
    assert courier.code == "KWIK"

    with pytest.raises(DuplicatePrimaryCourierError):
        await service.link_courier(network.lagos.id, HubCourierCreate(courier_id=courier.id, is_primary=True))

    link, linked = await service.link_courier(network.lagos.id, HubCourierCreate(courier_id=courier.id, priority=20))
    assert linked.id == courier.id
    assert link.is_primary is False

    with pytest.raises(DuplicateConfigurationError):
        await service.link_courier(network.lagos.id, HubCourierCreate(courier_id=courier.id))

    links = await service.hub_couriers(network.lagos.id)
    assert [c.code for _, c in links] == ["FEZ", "KWIK", "GIGL"]


@pytest.mark.asyncio
async def test_duplicate_courier_and_hub_codes(network, repository, options):
    service = ConfigurationService(repository, options)
    with pytest.raises(DuplicateConfigurationError):
        await service.create_courier(CourierCreate(name="Fez again", code="fez"))
    with pytest.raises(DuplicateConfigurationError):
        await service.create_hub(HubCreate(name="Another Lagos", code="los"))


@pytest.mark.asyncio
async def test_rate_validation(network, repository, options):
    service = ConfigurationService(repository, options)
    with pytest.raises(ResourceNotFoundError):
        await service.create_rate(ShippingRateCreate(zone_id=999, flat_rate=100))
    with pytest.raises(ValidationError):
        await service.create_rate(ShippingRateCreate(
            zone_id=network.south_west.id, flat_rate=100, min_weight_kg=10, max_weight_kg=5
        ))


@pytest.mark.asyncio
async def test_deactivated_rate_is_kept_but_ignored(network, repository, options):
    service = ConfigurationService(repository, options)
    rate = await service.deactivate_rate(network.lagos_rate.id)

    assert rate.is_active is False
    assert network.lagos_rate.id in [r.id for r in await service.list_rates(network.south_west.id)]
    found = await repository.find_active_rate(network.south_west.id, network.lagos.id)
    assert found.id == network.south_west_default.id


@pytest.mark.asyncio
async def test_configuration_endpoints(client, network):
    response = await client.post("/v1/zones", json={"name": "North-West", "code": "nw", "states": ["Kano", "Kaduna"]})
    assert response.status_code == 201
    zone_id = response.json()["id"]
    assert response.json()["code"] == "NW"

    response = await client.post("/v1/zones", json={"name": "Kano Only", "code": "KO", "states": ["kano"]})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_ZONE_OVERLAP"

    response = await client.post("/v1/hubs", json={"name": "Kano Hub", "code": "KAN", "state": "Kano"})
    assert response.status_code == 201
    hub_id = response.json()["id"]

    response = await client.post(f"/v1/hubs/{hub_id}/couriers", json={"courier_id": network.gigl.id, "is_primary": True})
    assert response.status_code == 201
    assert response.json()["courier_code"] == "GIGL"

    response = await client.post(f"/v1/hubs/{hub_id}/couriers", json={"courier_id": network.fez.id, "is_primary": True})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_DUPLICATE_PRIMARY"

    response = await client.post("/v1/rates", json={"zone_id": zone_id, "hub_id": hub_id, "flat_rate": 2500, "per_kg_rate": 150})
    assert response.status_code == 201
    rate_id = response.json()["id"]

    response = await client.post("/v1/shipping/calculate", json={
        "delivery_state": "Kaduna",
        "items": [{"hub_id": hub_id, "quantity": 1, "weight": 2.0}],
    })
    assert response.json()["total_shipping_fee"] == 2800

    response = await client.post(f"/v1/rates/{rate_id}/deactivate")
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = await client.post("/v1/shipping/calculate", json={
        "delivery_state": "Kaduna",
        "items": [{"hub_id": hub_id, "quantity": 1, "weight": 2.0}],
    })
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_RATE_NOT_FOUND"

    response = await client.patch(f"/v1/zones/{zone_id}", json={"estimated_delivery_days": 5})
    assert response.status_code == 200
    assert response.json()["estimated_delivery_days"] == 5
