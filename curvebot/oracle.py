"""Base <-> secondary exchange rate derived from a two-asset pool's reserves."""
import asyncio
from decimal import Decimal
from typing import Callable, Optional, Set

from .config import EXCHANGE_POOL_ADDRESS, ORACLE_ENABLED, RATE_REFRESH_SECONDS
from .logging_setup import log
from .models import ExchangeRate, PoolSnapshot
from .reader import ReserveReader

def compute_rate(pool: PoolSnapshot) -> Optional[ExchangeRate]:
    """None when either reserve is zero."""
    base, secondary = pool.base_reserve, pool.token_reserve
    if base <= 0 or secondary <= 0:
        return None
    return ExchangeRate(forward_rate=secondary / base, inverse_rate=base / secondary,
                        reserve_base=base, reserve_secondary=secondary)

class CancelToken:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

class ExchangeRateOracle:
    def __init__(self, reader: ReserveReader, pool_address: str = EXCHANGE_POOL_ADDRESS, *,
                 enabled: bool = ORACLE_ENABLED, interval: float = RATE_REFRESH_SECONDS):
        self.reader = reader
        self.pool_address = pool_address
        self.enabled = bool(enabled and pool_address)
        self.interval = interval
        self.rate: Optional[ExchangeRate] = None
        self.loading = False
        self.error: Optional[str] = None
        self._inflight: Set[asyncio.Task] = set()

    async def fetch_rate(self) -> Optional[ExchangeRate]:
        if not self.enabled:
            return None
        return compute_rate(await self.reader.fetch_pool(self.pool_address))

    async def refresh(self, token: Optional[CancelToken] = None) -> None:
        """One fetch. A None result or a failure keeps the last good rate."""
        if not self.enabled:
            return
        token = token or CancelToken()
        self.loading = True
        self.error = None
        try:
            r = await self.fetch_rate()
            if token.cancelled: return
            if r is not None:
                self.rate = r
            else:
                log.warning(f"Exchange pool {self.pool_address} has an empty reserve; keeping previous rate")
        except Exception as e:
            if token.cancelled: return
            self.error = str(e) or "Failed to fetch exchange rate"
            log.warning(f"Exchange rate refresh failed: {self.error}")
        finally:
            if not token.cancelled:
                self.loading = False

    def activate(self) -> Callable[[], None]:
        """Start periodic refresh; returns a disposer that stops it."""
        if not self.enabled:
            return lambda: None
        token = CancelToken()
        schedule = asyncio.create_task(self._schedule(token), name="exchange-rate-oracle")
        log.info(f"Exchange rate oracle started for pool {self.pool_address} (every {self.interval}s)")

        def dispose():
            token.cancel()
            schedule.cancel()
        return dispose

    async def _schedule(self, token: CancelToken):
        while not token.cancelled:
            # one refresh at a time; dispose does not cancel it, the token discards its result
            t = asyncio.create_task(self.refresh(token))
            self._inflight.add(t)
            t.add_done_callback(self._inflight.discard)
            await asyncio.shield(t)
            await asyncio.sleep(self.interval)

    def base_to_secondary(self, amount) -> Optional[Decimal]:
        if self.rate is None: return None
        return Decimal(str(amount)) * self.rate.forward_rate

    def secondary_to_base(self, amount) -> Optional[Decimal]:
        if self.rate is None: return None
        return Decimal(str(amount)) * self.rate.inverse_rate
