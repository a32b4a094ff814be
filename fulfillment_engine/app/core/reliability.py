"""
Reliability utilities.

Bounds every awaited data-access call with a caller-supplied timeout so a
stalled store surfaces as a distinguishable error instead of a hung request.
No retry happens here; retries belong to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from fulfillment_engine.app.core.exceptions import OperationTimeoutError

logger = logging.getLogger(__name__)


async def run_with_timeout(awaitable: Awaitable[Any], operation: str, timeout: Optional[float]) -> Any:
    """
    Await `awaitable`, failing with OperationTimeoutError after `timeout` seconds.
    
    A timeout of None disables the bound.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Operation timed out", extra={"operation": operation, "timeout_seconds": timeout})
        raise OperationTimeoutError(operation, timeout)
