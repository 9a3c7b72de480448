from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from iporesult.schemas import AllotmentResult


@dataclass(frozen=True)
class CacheEntry:
    result: AllotmentResult
    created_at: float


class ResultCache:
    """Time-bounded (boid, company_id) -> AllotmentResult map.

    Expired entries are dropped only when looked up again; nothing bounds the
    number of entries otherwise.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, boid: str, company_id: str) -> AllotmentResult | None:
        key = (boid, company_id)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.result

    def put(self, boid: str, company_id: str, result: AllotmentResult) -> None:
        self._entries[(boid, company_id)] = CacheEntry(result=result, created_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()
