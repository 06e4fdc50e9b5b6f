from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from dateutil import tz
from web3 import Web3
import discord

from .config import DISPLAY_TZ, EXPLORER_URL
from .constants import WEI, ZERO

Numeric = Union[Decimal, int, str, float, None]

def to_decimal(v: Numeric) -> Decimal:
    """Normalize a reader value to Decimal.

    ints and 0x-prefixed strings are raw 18-decimal fixed-point amounts;
    plain strings and floats are already in whole units.
    """
    if v is None: return ZERO
    if isinstance(v, bool): return Decimal(int(v))
    if isinstance(v, Decimal): return v
    if isinstance(v, int): return Decimal(v) / WEI
    if isinstance(v, float): return Decimal(str(v))
    s = str(v).strip().replace(",", "")
    if s.lower().startswith("0x"):
        return Decimal(int(s, 16)) / WEI
    try:
        return Decimal(s)
    except InvalidOperation:
        raise ValueError(f"not a decimal value: {v!r}")

def is_evm_address(addr: str) -> bool:
    return bool(addr) and Web3.is_address(addr.strip().lower())

def norm_address(addr: str) -> str:
    return addr.strip().lower()

def short_address(addr: str) -> str:
    if not addr: return ""
    return f"{addr[:6]}…{addr[-4:]}"

def address_url(addr: str) -> str: return f"{EXPLORER_URL}/address/{addr}"

def money(x) -> str:
    n=float(x)
    for u in ["","K","M","B","T"]:
        if abs(n) < 1000: return f"{n:,.2f}{u}"
        n/=1000
    return f"{n:,.2f}P"

def humanize(x) -> str:
    if x is None: return "—"
    return money(x)

def fmt_usd_price(x: Optional[Decimal]) -> str:
    if x is None: return "—"
    if x <= 0: return "$0.00"
    return f"${x:.2e}" if x < 1 else f"${x:,.4f}"

def fmt_base(x: Optional[Decimal], symbol: str) -> str:
    if x is None: return "—"
    return f"{x:,.2f} {symbol}"

def parse_price_input(v: str) -> Decimal:
    v=v.lower().replace(",","").replace("$","").strip(); m=Decimal(1)
    if v.endswith("k"): m,v=Decimal(1_000), v[:-1]
    elif v.endswith("m"): m,v=Decimal(1_000_000), v[:-1]
    try:
        return Decimal(v)*m
    except InvalidOperation:
        raise ValueError(f"invalid price: {v!r}")

def when_str(ts: float) -> str:
    zone = tz.gettz(DISPLAY_TZ) or tz.tzlocal()
    return datetime.fromtimestamp(ts, zone).strftime("%m-%d %H:%M")

async def username_from_id(client: discord.Client, user_id: int) -> str:
    user = client.get_user(user_id)
    if user is None:
        try: user = await client.fetch_user(user_id)
        except discord.HTTPException: user = None
    return user.name if user else f"user:{user_id}"
