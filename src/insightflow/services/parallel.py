"""
Concurrent fan-out where one failed fetch never sinks its siblings.
"""
import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from ..errors import is_cancellation

logger = logging.getLogger(__name__)


async def parallel_queries(**queries: Awaitable) -> tuple[dict[str, Any], dict[str, BaseException]]:
    """Execute named awaitables in parallel with per-query error isolation.

    Args:
        **queries: Named awaitables (e.g., stats=provider.get_stats(...))

    Returns:
        (results, errors). results has every key, None for failed or
        cancelled queries; errors holds the exception of each failed query.
        A cancelled query is logged at debug level and is not an error.
    """
    names = list(queries.keys())
    results = await asyncio.gather(*queries.values(), return_exceptions=True)

    output: dict[str, Any] = {}
    errors: dict[str, BaseException] = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            output[name] = None
            if is_cancellation(result):
                logger.debug(f"Query '{name}' cancelled")
                continue
            logger.error(f"Query '{name}' failed: {result}")
            errors[name] = result
        else:
            output[name] = result

    return output, errors
