import asyncio, random, string, time
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Mapping, Optional, Set, Union

import discord

from .cache import update_cache
from .config import ALERTS_KEY, BASE_USD_RATE, POLL_SECONDS
from .helpers import fmt_usd_price, norm_address, address_url, username_from_id
from .logging_setup import log
from .models import AlertCondition, PriceAlert
from .reader import ReserveReader, ReserveReadError
from .storage import KeyValueStorage
from .valuation import GraduationTracker, value_entry

_ID_CHARS = string.ascii_lowercase + string.digits

class InvalidAlertError(ValueError):
    """Rejected alert input; the message is safe to show to the user."""

def meets(condition: AlertCondition, current: Optional[Decimal], threshold: Decimal) -> bool:
    if current is None: return False
    return (current >= threshold) if condition is AlertCondition.ABOVE else (current <= threshold)

def parse_condition(v: Union[AlertCondition, str]) -> AlertCondition:
    if isinstance(v, AlertCondition): return v
    try:
        return AlertCondition(str(v).strip().lower())
    except ValueError:
        raise InvalidAlertError(f"condition must be 'above' or 'below', got {v!r}")

class PriceAlertEngine:
    """Owns the alert collection. Mutations are synchronous; persistence runs behind them."""

    def __init__(self, storage: KeyValueStorage, key: str = ALERTS_KEY):
        self.storage = storage
        self.key = key
        self._alerts: List[PriceAlert] = []
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    # ---- persistence ----
    async def load(self):
        data = await self.storage.get(self.key)
        self._alerts.clear()
        if not isinstance(data, list):
            if data is not None: log.warning(f"{self.key} is not a list; starting with no alerts")
            return
        for it in data:
            try:
                self._alerts.append(PriceAlert.from_dict(it))
            except (KeyError, TypeError, ValueError, InvalidOperation):
                log.warning(f"Skipping malformed alert record: {it!r}")
        log.info(f"Loaded {len(self._alerts)} alert(s) ({len(self.active_alerts())} active)")

    def _persist(self):
        snapshot = [a.to_dict() for a in self._alerts]
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._write(snapshot))
            return
        t = loop.create_task(self._write(snapshot))
        self._pending.add(t)
        t.add_done_callback(self._pending.discard)

    async def _write(self, snapshot: list):
        async with self._lock:
            try:
                await self.storage.set(self.key, snapshot)
            except Exception:
                log.exception(f"Failed to persist {self.key}; write skipped")

    async def flush(self):
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ---- operations ----
    def _new_id(self) -> str:
        taken = {a.id for a in self._alerts}
        while True:
            aid = f"{int(time.time() * 1000)}-{''.join(random.choices(_ID_CHARS, k=4))}"
            if aid not in taken: return aid

    def add(self, subject_address: str, subject_symbol: str, condition: Union[AlertCondition, str], threshold_usd,
            *, channel_id: int = 0, guild_id: int = 0, creator_id: int = 0, note: str = "") -> str:
        if not subject_address or not str(subject_address).strip():
            raise InvalidAlertError("subject address is required")
        cond = parse_condition(condition)
        try:
            threshold = Decimal(str(threshold_usd))
        except InvalidOperation:
            raise InvalidAlertError(f"threshold must be a number, got {threshold_usd!r}")
        if not threshold.is_finite() or threshold <= 0:
            raise InvalidAlertError("threshold must be a positive USD price")

        alert = PriceAlert(
            id=self._new_id(), subject_address=norm_address(subject_address), subject_symbol=(subject_symbol or "").strip(),
            condition=cond, threshold_usd=threshold, created_at=int(time.time()), triggered=False,
            channel_id=channel_id, guild_id=guild_id, creator_id=creator_id, note=(note or "").strip(),
        )
        self._alerts.insert(0, alert)
        self._persist()
        log.info(f"Alert {alert.id} set: {alert.subject_symbol or alert.subject_address} {cond.value} ${threshold}")
        return alert.id

    def remove(self, alert_id: str) -> bool:
        before = len(self._alerts)
        self._alerts[:] = [a for a in self._alerts if a.id != alert_id]
        if len(self._alerts) == before:
            return False
        self._persist()
        return True

    def evaluate(self, prices_by_subject: Mapping[str, object]) -> List[PriceAlert]:
        """Fire every untriggered alert whose condition holds. Each alert fires at most once."""
        prices: Dict[str, Decimal] = {}
        for addr, p in prices_by_subject.items():
            if p is None: continue
            try:
                d = p if isinstance(p, Decimal) else Decimal(str(p))
            except InvalidOperation:
                d = None
            if d is None or not d.is_finite():
                log.warning(f"Ignoring unusable price for {addr}: {p!r}")
                continue
            prices[norm_address(addr)] = d

        fired: List[PriceAlert] = []
        for alert in self._alerts:
            if alert.triggered: continue
            current = prices.get(alert.subject_address)
            if current is None: continue
            if meets(alert.condition, current, alert.threshold_usd):
                fired.append(alert)
                alert.triggered = True
        if fired:
            self._persist()
        return fired

    def active_alerts(self) -> List[PriceAlert]:
        return [a for a in self._alerts if not a.triggered]

    def alerts(self) -> List[PriceAlert]:
        return list(self._alerts)

    def get(self, alert_id: str) -> Optional[PriceAlert]:
        return next((a for a in self._alerts if a.id == alert_id), None)

    def subjects(self) -> List[str]:
        return list(dict.fromkeys(a.subject_address for a in self._alerts if not a.triggered))

# ---- Background watcher ----
async def fetch_prices(reader: ReserveReader, tracker: GraduationTracker, addresses: List[str],
                       base_usd_rate: Decimal = BASE_USD_RATE) -> Dict[str, Decimal]:
    """Current USD price per address; unreadable or unpriced curves are left out."""
    results = await asyncio.gather(*[reader.fetch_entry(a) for a in addresses], return_exceptions=True)
    prices: Dict[str, Decimal] = {}
    for addr, res in zip(addresses, results):
        if isinstance(res, ReserveReadError):
            log.warning(f"Read failed for {addr}: {res}")
            continue
        if isinstance(res, BaseException):
            log.error(f"Unexpected read error for {addr}", exc_info=res)
            continue
        entry = tracker.reconcile(res)
        await update_cache(entry, base_usd_rate)
        m = value_entry(entry, base_usd_rate)
        if m is not None and m.price_usd > 0:
            prices[addr] = m.price_usd
    return prices

async def notify(client: discord.Client, alert: PriceAlert, current: Optional[Decimal]):
    ch = client.get_channel(alert.channel_id) or await client.fetch_channel(alert.channel_id)
    above = alert.condition is AlertCondition.ABOVE
    title = f"{alert.subject_symbol or 'Token'} price alert"
    desc = (f"{'rose above' if above else 'fell below'} **{fmt_usd_price(alert.threshold_usd)}**\n"
            f"Current: **{fmt_usd_price(current)}**")
    if alert.note:
        desc += f"\n\n📝 {alert.note}"
    embed = discord.Embed(title=title, description=desc, url=address_url(alert.subject_address),
                          color=0x2ecc71 if above else 0xe74c3c)
    embed.set_footer(text=f"Set by {await username_from_id(client, alert.creator_id)} • id {alert.id}")
    await ch.send(content=f"<@{alert.creator_id}>" if alert.creator_id else None, embed=embed,
                  allowed_mentions=discord.AllowedMentions(users=True, roles=False, everyone=False, replied_user=False))

async def watcher(client: discord.Client, engine: PriceAlertEngine, reader: ReserveReader,
                  tracker: GraduationTracker, base_usd_rate: Decimal = BASE_USD_RATE):
    await client.wait_until_ready()
    while not client.is_closed():
        try:
            subjects = engine.subjects()
            if subjects:
                prices = await fetch_prices(reader, tracker, subjects, base_usd_rate)
                for alert in engine.evaluate(prices):
                    current = prices.get(alert.subject_address)
                    log.info(f"Alert fired {alert.id} | {alert.subject_symbol} {alert.condition.value} "
                             f"{fmt_usd_price(alert.threshold_usd)} curr={fmt_usd_price(current)}")
                    if not alert.channel_id: continue
                    try:
                        await notify(client, alert, current)
                    except discord.DiscordException:
                        log.exception(f"Failed to send alert {alert.id}")
        except Exception:
            log.exception("alert watcher loop error")
        await asyncio.sleep(POLL_SECONDS)
