"""
Zone Resolver.

Maps a delivery state to its shipping zone and guards zone configuration
against two zones claiming the same state.
"""

import logging
from typing import Iterable, List, Optional

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import ValidationError, ZoneNotFound, ZoneOverlapError
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository

logger = logging.getLogger(__name__)


def normalize_states(states: Iterable[str]) -> List[str]:
    """Trim, drop blanks and de-duplicate (case-insensitively), keeping first spelling."""
    seen = set()
    cleaned = []
    for state in states:
        name = (state or "").strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        cleaned.append(name)
    return cleaned


class ZoneResolver:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options

    async def resolve(self, state: str, city: Optional[str] = None) -> Zone:
        """
        Find the zone covering `state`.
        
        Raises:
            ValidationError: If state is blank.
            ZoneNotFound: If no zone lists the state. Callers must abort.
        """
        if not state or not state.strip():
            raise ValidationError("Delivery state is required")
        
        zone = await self.repository.find_zone_by_state(state)
        if zone is None:
            logger.warning("No zone for delivery state", extra={"state": state, "city": city})
            raise ZoneNotFound(state)
        return zone

    def estimated_delivery_days(self, zone: Zone) -> int:
        return zone.estimated_delivery_days or self.options.default_estimated_delivery_days

    async def ensure_no_overlap(self, states: Iterable[str], exclude_zone_id: Optional[int] = None) -> None:
        """
        Reject a zone definition whose states are already claimed elsewhere.
        
        Raises:
            ZoneOverlapError: naming the first conflicting zone.
        """
        wanted = {state.lower(): state for state in normalize_states(states)}
        for zone in await self.repository.list_zones():
            if zone.id == exclude_zone_id:
                continue
            clashes = [wanted[s.strip().lower()] for s in (zone.states or []) if s.strip().lower() in wanted]
            if clashes:
                raise ZoneOverlapError(sorted(clashes), zone.name)
