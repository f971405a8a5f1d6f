"""Cache entry model."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class CacheEntry:
    """Cached metric payload for one (metric type, filter set) pair.

    ``expiry`` and ``created_at`` are readings of the cache clock, not wall
    time; an entry is logically absent once the clock passes ``expiry``.
    """

    key: str
    data: Any
    expiry: float
    type: str
    created_at: float
    filters: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return now > self.expiry
