import asyncio
from typing import Callable, List, Optional
import discord
from discord import app_commands
from discord.ext import commands

from .alerts import PriceAlertEngine, InvalidAlertError, watcher as alerts_watcher
from .cache import update_cache, cached_price_usd
from .config import BASE_USD_RATE, BASE_SYMBOL, SECONDARY_SYMBOL, LOG_LEVEL, RPC_URL
from .favorites import Favorites
from .helpers import is_evm_address, norm_address, parse_price_input, fmt_usd_price, short_address, address_url, humanize
from .logging_setup import log
from .models import AlertCondition, CurveEntry
from .oracle import ExchangeRateOracle
from .reader import ReserveReader, ReserveReadError
from .storage import JsonFileStorage
from .tables import alerts_table, history_table, watchlist_table, mcap_cell
from .valuation import GraduationTracker, render_metrics, value_entry, platform_stats, rank_by_market_cap, about_to_graduate, display_progress


class Bot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = False
        super().__init__(command_prefix="!", intents=intents)
        self.storage = JsonFileStorage()
        self.reader = ReserveReader()
        self.alerts = PriceAlertEngine(self.storage)
        self.favorites = Favorites(self.storage)
        self.tracker = GraduationTracker()
        self.oracle = ExchangeRateOracle(self.reader)
        self._dispose_oracle: Optional[Callable[[], None]] = None

    async def read_entry(self, address: str, symbol: str = "") -> CurveEntry:
        entry = self.tracker.reconcile(await self.reader.fetch_entry(norm_address(address), symbol))
        await update_cache(entry, BASE_USD_RATE)
        return entry

    async def read_many(self, addresses: List[str]) -> List[CurveEntry]:
        results = await asyncio.gather(*[self.read_entry(a) for a in addresses], return_exceptions=True)
        out = []
        for a, r in zip(addresses, results):
            if isinstance(r, CurveEntry): out.append(r)
            else:
                log.warning(f"Read failed for {a}: {r}")
                out.append(CurveEntry(address=a))
        return out

    async def setup_hook(self):
        await self.alerts.load(); await self.favorites.load()
        self._dispose_oracle = self.oracle.activate()
        asyncio.create_task(alerts_watcher(self, self.alerts, self.reader, self.tracker))

        # ------- Curve stats -------
        @self.tree.command(name="curve", description="Price, market cap and progress for a bonding curve")
        @app_commands.describe(address="Curve contract address", symbol="Optional token symbol for display")
        async def curve(inter: discord.Interaction, address: str, symbol: Optional[str] = None):
            await inter.response.defer(thinking=True)
            if not is_evm_address(address):
                await inter.followup.send("❌ That doesn't look like a contract address."); return
            try:
                entry = await self.read_entry(address, symbol or "")
            except ReserveReadError as e:
                await inter.followup.send(f"⚠️ Curve data unavailable right now ({e})."); return
            metrics = value_entry(entry, BASE_USD_RATE)
            title = f"{symbol or short_address(entry.address)}" + (" 🎓" if metrics and metrics.graduated else "")
            embed = discord.Embed(title=title, url=address_url(entry.address), color=0xffd700 if (metrics and metrics.graduated) else 0x00b894)
            for k, v in render_metrics(metrics).items():
                embed.add_field(name=k, value=v, inline=True)
            if metrics and self.oracle.rate:
                wq = self.oracle.base_to_secondary(metrics.price_base)
                embed.add_field(name=f"Price ({SECONDARY_SYMBOL})", value=f"{wq:.4e}", inline=True)
            embed.set_footer(text=f"{BASE_SYMBOL}/USD {BASE_USD_RATE} • {'watched ⭐' if self.favorites.is_favorite(entry.address) else 'not watched'}")
            await inter.followup.send(embed=embed)

        # ------- Exchange rate -------
        @self.tree.command(name="rate", description=f"{BASE_SYMBOL} ⇄ {SECONDARY_SYMBOL} exchange rate")
        @app_commands.describe(amount=f"Optional {BASE_SYMBOL} amount to convert")
        async def rate(inter: discord.Interaction, amount: Optional[float] = None):
            if not self.oracle.enabled:
                await inter.response.send_message(f"{SECONDARY_SYMBOL} rate is disabled.", ephemeral=True); return
            r = self.oracle.rate
            if r is None:
                msg = "⏳ Rate loading…" if self.oracle.loading else f"⚠️ Rate unavailable{f' ({self.oracle.error})' if self.oracle.error else ''}."
                await inter.response.send_message(msg, ephemeral=True); return
            lines = [f"1 {BASE_SYMBOL} = **{r.forward_rate:.6f} {SECONDARY_SYMBOL}**",
                     f"1 {SECONDARY_SYMBOL} = **{r.inverse_rate:.6f} {BASE_SYMBOL}**",
                     f"Reserves: {r.reserve_base:,.2f} {BASE_SYMBOL} / {r.reserve_secondary:,.2f} {SECONDARY_SYMBOL}"]
            if amount is not None:
                lines.append(f"{amount:,.4f} {BASE_SYMBOL} → **{self.oracle.base_to_secondary(amount):,.4f} {SECONDARY_SYMBOL}**")
            if self.oracle.error:
                lines.append(f"_last refresh failed: {self.oracle.error}_")
            await inter.response.send_message("\n".join(lines))

        # ------- Set price alert -------
        @self.tree.command(name="alert", description="Alert when a token's USD price crosses a target (auto up/down)")
        @app_commands.describe(address="Curve contract address", target="Target USD price (e.g. 0.0002, 2e-4)",
                               symbol="Token symbol for display", condition="Force above/below instead of auto", note="Optional note")
        @app_commands.choices(condition=[app_commands.Choice(name="above", value="above"), app_commands.Choice(name="below", value="below")])
        async def alert(inter: discord.Interaction, address: str, target: str, symbol: Optional[str] = None,
                        condition: Optional[app_commands.Choice[str]] = None, note: Optional[str] = None):
            await inter.response.defer(thinking=True)
            if not is_evm_address(address):
                await inter.followup.send("❌ That doesn't look like a contract address."); return
            try:
                target_val = parse_price_input(target)
            except ValueError:
                await inter.followup.send("❌ Invalid target. Use a USD price like `0.0002`, `2e-4` or `$0.25`."); return
            current = None
            try:
                entry = await self.read_entry(address, symbol or "")
                m = value_entry(entry, BASE_USD_RATE)
                current = m.price_usd if (m and m.price_usd > 0) else None
            except ReserveReadError as e:
                log.warning(f"Alert set without current price for {address}: {e}")
            if condition:
                cond = condition.value
            else:
                cond = "below" if (current is not None and target_val < current) else "above"
            try:
                self.alerts.add(address, symbol or "", cond, target_val, channel_id=inter.channel_id or 0,
                                guild_id=inter.guild_id or 0, creator_id=inter.user.id, note=note or "")
            except InvalidAlertError as e:
                await inter.followup.send(f"❌ {e}"); return
            label = symbol or short_address(address)
            msg = (f"⏰ Alert set for **{label}**: price {'≥' if cond == 'above' else '≤'} {fmt_usd_price(target_val)}"
                   f" (current: {fmt_usd_price(current)}).")
            await inter.followup.send(msg + ("\n📝 Note saved." if note else ""))

        # ------- List active alerts -------
        @self.tree.command(name="alerts", description="List this server's active price alerts")
        async def alerts(inter: discord.Interaction, public: bool = True):
            await inter.response.defer(thinking=True, ephemeral=not public)
            gid = inter.guild_id or 0
            active = [a for a in self.alerts.active_alerts() if a.guild_id == gid]
            if not active:
                await inter.followup.send("No active alerts in this server.", ephemeral=not public); return
            current = {a.subject_address: await cached_price_usd(a.subject_address) for a in active}
            embed = discord.Embed(title="Price Alerts", description="Cached prices; remove with `/alert_remove <ID>`.", color=0x2b90d9)
            embed.add_field(name="Active", value=alerts_table(active[:20], current), inline=False)
            embed.set_footer(text=f"{len(active)} alert(s)")
            await inter.followup.send(embed=embed, ephemeral=not public)

        # ------- Remove alert -------
        @self.tree.command(name="alert_remove", description="Remove a price alert by ID (as shown in /alerts)")
        async def alert_remove(inter: discord.Interaction, alert_id: str):
            gid = inter.guild_id or 0
            key = alert_id.strip()
            match = [a for a in self.alerts.alerts() if a.guild_id == gid and (a.id == key or a.id.endswith(f"-{key}"))]
            if not match:
                await inter.response.send_message("❌ No alert with that ID. Use `/alerts` to see IDs.", ephemeral=True); return
            a = match[0]
            can_manage = isinstance(inter.user, discord.Member) and inter.user.guild_permissions.manage_guild
            if inter.user.id != a.creator_id and not can_manage:
                await inter.response.send_message("❌ Only the alert creator or a user with **Manage Server** can remove this alert.", ephemeral=True); return
            self.alerts.remove(a.id)
            await inter.response.send_message(f"🗑️ Removed alert for **{a.subject_symbol or short_address(a.subject_address)}** "
                                              f"({'≥' if a.condition is AlertCondition.ABOVE else '≤'} {fmt_usd_price(a.threshold_usd)}).")

        # ------- Alert history -------
        @self.tree.command(name="alert_history", description="Recent alerts in this server, fired or not")
        async def alert_history(inter: discord.Interaction, count: Optional[int] = 10):
            gid = inter.guild_id or 0
            n = max(1, min(int(count or 10), 50))
            items = [a for a in self.alerts.alerts() if a.guild_id == gid][:n]
            if not items:
                await inter.response.send_message("No alerts yet.", ephemeral=True); return
            embed = discord.Embed(title="Alert History", color=0xf39c12)
            embed.add_field(name=f"Last {len(items)}", value=history_table(items), inline=False)
            await inter.response.send_message(embed=embed)

        # ------- Watchlist -------
        @self.tree.command(name="watch", description="Add or remove a curve from the watchlist")
        async def watch(inter: discord.Interaction, address: str):
            if not is_evm_address(address):
                await inter.response.send_message("❌ That doesn't look like a contract address.", ephemeral=True); return
            now_watched = await self.favorites.toggle(address)
            await inter.response.send_message(f"{'⭐ Watching' if now_watched else '✖️ Stopped watching'} `{short_address(address)}`.")

        @self.tree.command(name="watchlist", description="Watched curves ranked by market cap")
        async def watchlist(inter: discord.Interaction):
            await inter.response.defer(thinking=True)
            if not len(self.favorites):
                await inter.followup.send("Watchlist is empty. Add curves with `/watch`."); return
            entries = rank_by_market_cap(await self.read_many(self.favorites.addresses), BASE_USD_RATE)
            rows = []
            for i, e in enumerate(entries, 1):
                m = value_entry(e, BASE_USD_RATE)
                rows.append([str(i), short_address(e.address),
                             fmt_usd_price(m.price_usd) if m else "…",
                             mcap_cell(m.market_cap_usd) if m else "…",
                             display_progress(m) if m else "…"])
            embed = discord.Embed(title="Watchlist", color=0x2b90d9)
            embed.add_field(name="By market cap", value=watchlist_table(rows), inline=False)
            soon = about_to_graduate(entries, 3)
            if soon:
                embed.add_field(name="About to graduate", value="\n".join(
                    f"`{short_address(e.address)}` {e.curve.progress_bps / 100:.1f}%" for e in soon), inline=False)
            await inter.followup.send(embed=embed)

        @self.tree.command(name="stats", description="Totals across watched curves")
        async def stats(inter: discord.Interaction):
            await inter.response.defer(thinking=True)
            s = platform_stats(await self.read_many(self.favorites.addresses), BASE_USD_RATE)
            embed = discord.Embed(title="Platform Stats", color=0x00b894)
            embed.add_field(name="Launches", value=str(s.total_launches), inline=True)
            embed.add_field(name="Graduated", value=str(s.graduated_count), inline=True)
            embed.add_field(name=f"{BASE_SYMBOL} Locked", value=f"{s.total_locked_base:,.2f}", inline=True)
            embed.add_field(name="Locked (USD)", value=f"${humanize(s.total_locked_usd)}", inline=True)
            await inter.followup.send(embed=embed)

        await self.tree.sync()

    async def close(self):
        if self._dispose_oracle:
            self._dispose_oracle(); self._dispose_oracle = None
        await self.alerts.flush()
        await super().close()

    async def on_ready(self):
        guilds = ", ".join([f"{g.name}({g.id})" for g in self.guilds]) or "none"
        log.info(f"Logged in as {self.user} | Guilds: [{guilds}] | LOG_LEVEL={LOG_LEVEL} | RPC={RPC_URL} | "
                 f"oracle={'on' if self.oracle.enabled else 'off'}")
