"""
Mutual fund instruments cache.

The /mf/instruments endpoint returns a large CSV (a few thousand schemes), so
the parsed list is kept in memory for 24 hours and searched locally.

- lazy load on first request, reload once the TTL has passed
- search by fund name, AMC or trading symbol
- a failed reload keeps whatever was cached before
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

CACHE_TTL_MS = 24 * 60 * 60 * 1000

NUMERIC_COLUMNS = {
    "minimum_purchase_amount",
    "purchase_amount_multiplier",
    "minimum_additional_purchase_amount",
    "minimum_redemption_quantity",
    "redemption_quantity_multiplier",
    "last_price",
}
BOOLEAN_COLUMNS = {"purchase_allowed", "redemption_allowed"}

SEARCH_FIELDS = ("name", "amc", "tradingsymbol")

FetchFn = Callable[[], Awaitable[Union[str, bytes]]]


def _to_number(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        return 0
    return number if math.isfinite(number) else 0


def parse_mf_csv(csv_text: str) -> List[Dict[str, Any]]:
    """
    Parse the instruments CSV into a list of dicts keyed by header name.

    Rows whose field count does not match the header are skipped.
    """
    lines = csv_text.strip().splitlines()
    if len(lines) < 2:
        return []

    headers = lines[0].split(",")
    instruments = []
    for line in lines[1:]:
        values = line.split(",")
        if len(values) != len(headers):
            continue

        instrument: Dict[str, Any] = {}
        for header, value in zip(headers, values):
            if header in NUMERIC_COLUMNS:
                instrument[header] = _to_number(value)
            elif header in BOOLEAN_COLUMNS:
                instrument[header] = value == "1"
            else:
                instrument[header] = value
        instruments.append(instrument)

    return instruments


@dataclass(frozen=True)
class CacheStats:
    is_cached: bool
    instrument_count: int
    last_fetched_at: Optional[int]
    is_expired: bool
    ttl_ms: int


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class InstrumentCache:
    """In-memory MF instrument list with a fixed TTL."""

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or _wall_clock_ms
        self._instruments: Optional[List[Dict[str, Any]]] = None
        self._last_fetched_at: Optional[int] = None

    def is_expired(self) -> bool:
        if self._instruments is None or self._last_fetched_at is None:
            return True
        return (self._clock() - self._last_fetched_at) > CACHE_TTL_MS

    async def _load(self, fetch_fn: FetchFn) -> List[Dict[str, Any]]:
        try:
            raw = await fetch_fn()
        except Exception as e:
            logger.error("Failed to load MF instruments: %s", e)
            raise

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        instruments = parse_mf_csv(raw)

        # swap both at once so readers never see a half-built list
        self._instruments, self._last_fetched_at = instruments, self._clock()
        logger.info("MF instruments cache loaded: %d funds", len(instruments))
        return instruments

    async def get_instruments(self, fetch_fn: FetchFn) -> List[Dict[str, Any]]:
        if self.is_expired():
            return await self._load(fetch_fn)
        return self._instruments

    async def search(self, fetch_fn: FetchFn, query: Optional[str], limit: int = 10) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring search over name, AMC and trading symbol.

        Args:
            fetch_fn: Async callable returning the raw instruments CSV
            query: Search text; blank queries return [] without touching the API
            limit: Max results to return

        Returns:
            Matching instruments in upstream order
        """
        term = (query or "").strip().lower()
        if not term:
            return []

        instruments = await self.get_instruments(fetch_fn)
        matches = [
            inst for inst in instruments
            if any(term in str(inst.get(field) or "").lower() for field in SEARCH_FIELDS)
        ]
        return matches[:limit]

    def clear(self) -> None:
        self._instruments = None
        self._last_fetched_at = None

    def stats(self) -> CacheStats:
        return CacheStats(
            is_cached=self._instruments is not None,
            instrument_count=len(self._instruments) if self._instruments is not None else 0,
            last_fetched_at=self._last_fetched_at,
            is_expired=self.is_expired(),
            ttl_ms=CACHE_TTL_MS,
        )


# Shared by every chat user of this process
mf_cache = InstrumentCache()
