import asyncio, time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional
from .models import CurveEntry, DerivedMetrics
from .valuation import value_entry

@dataclass
class CurveView:
    entry: CurveEntry
    metrics: Optional[DerivedMetrics]
    updated_ts: float

curve_cache: Dict[str, CurveView] = {}
CURVE_CACHE_LOCK = asyncio.Lock()

async def update_cache(entry: CurveEntry, base_usd_rate: Decimal) -> CurveView:
    view = CurveView(entry=entry, metrics=value_entry(entry, base_usd_rate), updated_ts=time.time())
    async with CURVE_CACHE_LOCK:
        curve_cache[entry.address.lower()] = view
    return view

async def cached_price_usd(address: str) -> Optional[Decimal]:
    async with CURVE_CACHE_LOCK:
        v = curve_cache.get(address.lower())
    return v.metrics.price_usd if (v and v.metrics) else None
