"""
KV Cache — Expiration Helpers

Shared TTL arithmetic so every backend agrees on what "expired" means.

Rules:
- ttl None, 0 or negative -> no expiration (stored as None, never 0)
- ttl > 0 -> rounded up to whole seconds, then absolute expiry `now + ttl`
  (every backend, Redis EX included, sees the same whole-second TTL)
- an entry is expired only once `now` is strictly past its expiry
- a stored expiry <= 0 (legacy rows) reads as "no expiration"
"""

import math
from typing import NamedTuple


class CacheEntry(NamedTuple):
    """Scalar cache slot: stored value plus absolute expiry (None = never)."""

    value: object
    expires_at: float | None


def normalize_ttl(ttl: int | float | None) -> int | None:
    """Return a positive TTL in whole seconds, or None for "no expiration"."""
    if ttl is None or ttl <= 0:
        return None
    return math.ceil(ttl)


def compute_expires_at(ttl: int | float | None, now: float) -> float | None:
    """Absolute expiry timestamp for a write happening at `now`."""
    seconds = normalize_ttl(ttl)
    if seconds is None:
        return None
    return now + seconds


def is_expired(expires_at: float | None, now: float) -> bool:
    """Check whether an entry with the given expiry is logically absent at `now`."""
    if expires_at is None or expires_at <= 0:
        return False
    return now > expires_at
