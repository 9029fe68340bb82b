from __future__ import annotations

import random


def compute_backoff(
    attempt: int, delay: float = 2.0, factor: float = 2.0, jitter: float = 0.0
) -> float:
    """Exponential backoff: ``delay * factor ** (attempt - 1)`` plus optional jitter."""
    backoff = delay * factor ** max(attempt - 1, 0)
    if jitter:
        backoff += random.uniform(0, jitter)
    return backoff
