# app/utils/store.py
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as PoolTimeoutError

from app.services.exceptions import AssignmentError, Timeout, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded_store_call(awaitable: Awaitable[T], timeout: Optional[float], operation: str) -> T:
    """
    Await a store operation under `timeout` seconds.

    Expiry surfaces as `Timeout`; connection-level database faults surface as
    `StoreUnavailable`. Integrity errors and engine errors pass through untouched.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except AssignmentError:
        raise
    except asyncio.TimeoutError:
        logger.warning("Store call '%s' exceeded %ss", operation, timeout)
        raise Timeout(f"{operation} timed out after {timeout}s", {"operation": operation, "timeout": timeout})
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as e:
        logger.error("Store call '%s' failed: %s", operation, e)
        raise StoreUnavailable(f"{operation} failed: store unavailable", {"operation": operation}) from e
