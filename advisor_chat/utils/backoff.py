"""Capped exponential backoff for discrete, idempotent requests."""


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 5.0) -> float:
    """Delay before retry number ``attempt`` (0-based): base, 2*base, 4*base, ... up to ``cap``."""
    return min(base * (2 ** max(attempt, 0)), cap)
