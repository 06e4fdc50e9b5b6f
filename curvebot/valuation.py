"""Price, market cap and progress figures for bonding curves.

Two pricing regimes apply. An ACTIVE curve is priced by its own `currentPrice`;
a GRADUATED curve is priced by the ratio of its pool reserves. A graduated
curve whose pool has no token reserve yet falls back to the curve price.
"""
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .config import FIXED_TOTAL_SUPPLY, PROGRESS_SCALE, BASE_SYMBOL
from .constants import ZERO
from .helpers import fmt_usd_price, fmt_base, humanize
from .logging_setup import log
from .models import CurveSnapshot, PoolSnapshot, DerivedMetrics, CurveStatus, CurveEntry, PlatformStats

ONE = Decimal(1)

def curve_status(curve: Optional[CurveSnapshot]) -> CurveStatus:
    return CurveStatus.GRADUATED if (curve is not None and curve.graduated) else CurveStatus.ACTIVE

def progress_fraction(progress_bps: int, scale: Decimal = PROGRESS_SCALE) -> Decimal:
    if scale <= 0: return ZERO
    return min(max(Decimal(progress_bps) / scale, ZERO), ONE)

def value_curve(curve: Optional[CurveSnapshot], pool: Optional[PoolSnapshot], base_usd_rate: Decimal,
                total_supply: Decimal = FIXED_TOTAL_SUPPLY) -> Optional[DerivedMetrics]:
    """Derive metrics for one curve; None while the curve has not been read yet."""
    if curve is None:
        return None
    status = curve_status(curve)
    if status is CurveStatus.GRADUATED and pool is not None and pool.priced:
        price_base, locked = pool.base_reserve / pool.token_reserve, pool.base_reserve
    else:
        price_base, locked = curve.current_price or ZERO, curve.real_base_reserves or ZERO
    price_usd = price_base * base_usd_rate
    return DerivedMetrics(
        price_base=price_base,
        price_usd=price_usd,
        market_cap_usd=price_usd * total_supply,
        locked_base=locked,
        progress_fraction=progress_fraction(curve.progress_bps),
        status=status,
    )

def value_entry(entry: CurveEntry, base_usd_rate: Decimal) -> Optional[DerivedMetrics]:
    return value_curve(entry.curve, entry.pool, base_usd_rate)

def display_progress(metrics: DerivedMetrics) -> str:
    if metrics.graduated: return "Graduated"
    return f"{metrics.progress_fraction * 100:.1f}%"

def render_metrics(metrics: Optional[DerivedMetrics], loading: bool = False, base_symbol: str = BASE_SYMBOL) -> Dict[str, str]:
    """Display strings for the four headline stats; '…' while loading."""
    graduated = metrics is not None and metrics.graduated
    locked_label = "Liquidity" if graduated else f"{base_symbol} Deposited"
    if loading or metrics is None:
        return {"Price (USD)": "…", "Market Cap": "…", locked_label: "…", "Progress": "…"}
    mcap = metrics.market_cap_usd
    return {
        "Price (USD)": fmt_usd_price(metrics.price_usd),
        "Market Cap": f"${humanize(mcap)}" if mcap > 0 else "$0.00",
        locked_label: fmt_base(metrics.locked_base, base_symbol),
        "Progress": display_progress(metrics),
    }

# ---- Aggregates ----
def platform_stats(entries: Iterable[CurveEntry], base_usd_rate: Decimal) -> PlatformStats:
    launches = graduated = 0; locked = ZERO
    for e in entries:
        launches += 1
        m = value_entry(e, base_usd_rate)
        if m is None: continue
        if m.graduated: graduated += 1
        locked += m.locked_base
    return PlatformStats(total_launches=launches, graduated_count=graduated,
                         total_locked_base=locked, total_locked_usd=locked * base_usd_rate)

def market_cap(entry: CurveEntry, base_usd_rate: Decimal) -> Decimal:
    m = value_entry(entry, base_usd_rate)
    return m.market_cap_usd if m else ZERO

def rank_by_market_cap(entries: Iterable[CurveEntry], base_usd_rate: Decimal) -> List[CurveEntry]:
    return sorted(entries, key=lambda e: market_cap(e, base_usd_rate), reverse=True)

def about_to_graduate(entries: Iterable[CurveEntry], limit: int = 5) -> List[CurveEntry]:
    active = [e for e in entries if e.curve is not None and not e.curve.graduated]
    return sorted(active, key=lambda e: e.curve.progress_bps, reverse=True)[:limit]

# ---- Graduation observer ----
class GraduationTracker:
    """Remembers the last status seen per curve. ACTIVE -> GRADUATED is one-way."""

    def __init__(self):
        self._seen: Dict[str, CurveStatus] = {}
        self.anomalies = 0

    def observe(self, address: str, curve: Optional[CurveSnapshot]) -> Optional[CurveStatus]:
        key = address.lower()
        prev = self._seen.get(key)
        if curve is None:
            return prev
        now = curve_status(curve)
        if prev is CurveStatus.GRADUATED and now is CurveStatus.ACTIVE:
            self.anomalies += 1
            log.warning(f"Curve {address} reported ACTIVE after GRADUATED; keeping GRADUATED")
            return prev
        if prev is CurveStatus.ACTIVE and now is CurveStatus.GRADUATED:
            log.info(f"Curve {address} graduated")
        self._seen[key] = now
        return now

    def reconcile(self, entry: CurveEntry) -> CurveEntry:
        """Apply observe() to an entry, pinning the graduated flag when upstream regressed."""
        status = self.observe(entry.address, entry.curve)
        if entry.curve is not None and status is CurveStatus.GRADUATED and not entry.curve.graduated:
            entry.curve = replace(entry.curve, graduated=True)
        return entry
