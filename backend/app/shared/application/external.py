import asyncio
import logging
from typing import Awaitable, TypeVar

from app.shared.domain.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_external(awaitable: Awaitable[T], *, service: str, timeout: float) -> T:
    """Await a collaborator call with a hard deadline.

    Timeouts, cancellations of the inner call and unexpected client errors
    all surface as ExternalServiceError so callers can retry without any
    state having been touched.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{service} timed out after {timeout}s")
        raise ExternalServiceError(f"{service} did not respond in time, please retry")
    except ExternalServiceError:
        raise
    except Exception as exc:
        logger.warning(f"{service} failed: {exc}")
        raise ExternalServiceError(f"{service} is unavailable: {exc}") from exc
