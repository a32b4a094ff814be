"""
Service wiring for the API layer.

Each request gets a repository bound to its own session and fresh engine
components built from the configured EngineOptions.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment_engine.app.core.config import EngineOptions, settings
from fulfillment_engine.app.core.redis_client import get_redis
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.domain.billing.settlement_service import SettlementService
from fulfillment_engine.app.domain.configuration.configuration_service import ConfigurationService
from fulfillment_engine.app.domain.orders.courier_assignment import CourierAssignmentService
from fulfillment_engine.app.domain.orders.order_service import OrderService
from fulfillment_engine.app.domain.shipping.calculator import ShippingCalculator
from fulfillment_engine.app.domain.tracking.tracking_service import TrackingService
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.services.notification_service import OutboxNotifier
from fulfillment_engine.app.services.webhook_dedup import WebhookDeduplicator


def get_engine_options() -> EngineOptions:
    return EngineOptions.from_settings(settings)


async def get_repository(
    db: AsyncSession = Depends(get_db),
    options: EngineOptions = Depends(get_engine_options)
) -> FulfillmentRepository:
    return FulfillmentRepository(db, timeout=options.operation_timeout_seconds)


async def get_shipping_calculator(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> ShippingCalculator:
    return ShippingCalculator(repository, options)


async def get_order_service(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> OrderService:
    return OrderService(repository, options)


async def get_assignment_service(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> CourierAssignmentService:
    return CourierAssignmentService(repository, options)


async def get_tracking_service(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> TrackingService:
    return TrackingService(repository, options)


async def get_settlement_service(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> SettlementService:
    return SettlementService(repository, options)


async def get_configuration_service(
    repository: FulfillmentRepository = Depends(get_repository),
    options: EngineOptions = Depends(get_engine_options)
) -> ConfigurationService:
    return ConfigurationService(repository, options)


async def get_outbox_notifier(
    repository: FulfillmentRepository = Depends(get_repository)
) -> OutboxNotifier:
    return OutboxNotifier(repository)


async def get_webhook_deduplicator(redis=Depends(get_redis)) -> WebhookDeduplicator:
    return WebhookDeduplicator(redis, settings.webhook_dedup_ttl_seconds)


def get_actor(x_actor: Optional[str] = Header(None, description="Operator name recorded in the audit log")) -> Optional[str]:
    return x_actor
