"""
Database seeding script for shipping reference data.

Creates the six delivery zones, two fulfillment hubs, their couriers and a
starting set of shipping rates for development.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fulfillment_engine.app.core.config import EngineOptions, settings
from fulfillment_engine.app.db.session import AsyncSessionLocal, Base, engine
from fulfillment_engine.app.domain.configuration.configuration_service import ConfigurationService
from fulfillment_engine.app.models.audit_log import AuditLog  # noqa: F401  registers audit_logs
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.configuration import (
    CourierCreate, HubCourierCreate, HubCreate, ShippingRateCreate, ZoneCreate
)

ZONES = [
    ZoneCreate(name="South-West", code="SW", states=["Lagos", "Ogun", "Oyo", "Osun", "Ondo", "Ekiti"], estimated_delivery_days=2),
    ZoneCreate(name="South-South", code="SS", states=["Delta", "Rivers", "Edo", "Bayelsa", "Cross River", "Akwa Ibom"], estimated_delivery_days=4),
    ZoneCreate(name="South-East", code="SE", states=["Anambra", "Enugu", "Imo", "Abia", "Ebonyi"], estimated_delivery_days=4),
    ZoneCreate(name="North-Central", code="NC", states=["FCT", "Kwara", "Niger", "Kogi", "Benue", "Plateau", "Nasarawa"], estimated_delivery_days=5),
    ZoneCreate(name="North-West", code="NW", states=["Kano", "Kaduna", "Katsina", "Sokoto", "Kebbi", "Zamfara", "Jigawa"], estimated_delivery_days=6),
    ZoneCreate(name="North-East", code="NE", states=["Borno", "Yobe", "Adamawa", "Bauchi", "Gombe", "Taraba"], estimated_delivery_days=7),
]


async def seed_reference_data():
    """
    Seed shipping configuration.

    Creates:
    - 6 zones
    - Lagos and Warri hubs
    - Fez (Lagos primary) and GIGL (Warri primary, Lagos backup)
    - A zone-wide rate per zone plus hub rates for the home zones
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting reference data seeding...")

        repository = FulfillmentRepository(db, timeout=settings.operation_timeout_seconds)
        service = ConfigurationService(repository, EngineOptions.from_settings(settings))

        if await service.list_zones():
            print("ℹ️  Zones already exist, skipping seeding")
            return

        zones = {}
        for zone_in in ZONES:
            zone = await service.create_zone(zone_in)
            zones[zone.code] = zone
            print(f"✅ Created zone {zone.name} ({len(zone.states)} states)")

        lagos = await service.create_hub(HubCreate(name="Lagos Hub", code="LOS", city="Ikeja", state="Lagos"))
        warri = await service.create_hub(HubCreate(name="Warri Hub", code="WRI", city="Warri", state="Delta"))
        print("✅ Created hubs: Lagos Hub, Warri Hub")

        fez = await service.create_courier(CourierCreate(name="Fez Delivery", code="FEZ", base_rate=1200))
        gigl = await service.create_courier(CourierCreate(name="GIG Logistics", code="GIGL", base_rate=1000))
        await service.link_courier(lagos.id, HubCourierCreate(courier_id=fez.id, is_primary=True, priority=5))
        await service.link_courier(lagos.id, HubCourierCreate(courier_id=gigl.id, priority=10))
        await service.link_courier(warri.id, HubCourierCreate(courier_id=gigl.id, is_primary=True, priority=1))
        print("✅ Linked couriers: Fez → Lagos (primary), GIGL → Warri (primary), GIGL → Lagos")

        for zone in zones.values():
            await service.create_rate(ShippingRateCreate(
                zone_id=zone.id,
                name=f"{zone.name} standard",
                flat_rate=1500 + 500 * (zone.estimated_delivery_days - 2),
                per_kg_rate=250,
            ))
        await service.create_rate(ShippingRateCreate(
            zone_id=zones["SW"].id, hub_id=lagos.id, name="Lagos intra-state",
            flat_rate=1000, per_kg_rate=100, free_shipping_threshold=40000,
        ))
        await service.create_rate(ShippingRateCreate(
            zone_id=zones["SS"].id, hub_id=warri.id, name="Warri regional",
            flat_rate=1500, per_kg_rate=200, free_shipping_threshold=50000,
        ))
        print("✅ Created shipping rates")

        print("\n🎉 Reference data seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_reference_data())
