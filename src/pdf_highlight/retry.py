"""Backoff shared by the HTTP collaborators (model API and object store)."""

import asyncio
import random

INITIAL_BACKOFF = 3.0
MAX_BACKOFF = 30.0


async def backoff_sleep(backoff: float, jitter: float = 3.0) -> float:
    """Sleep for backoff plus random jitter, return the next backoff."""
    await asyncio.sleep(backoff + random.uniform(0, jitter))
    return min(backoff * 2, MAX_BACKOFF)
