from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from .constants import ZERO, ZERO_ADDRESS

class CurveStatus(str, Enum):
    ACTIVE = "active"
    GRADUATED = "graduated"

class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"

@dataclass
class CurveSnapshot:
    current_price: Decimal
    real_base_reserves: Decimal
    progress_bps: int
    graduated: bool
    pool: str = ZERO_ADDRESS
    real_token_reserves: Decimal = ZERO
    virtual_base_reserves: Decimal = ZERO
    virtual_token_reserves: Decimal = ZERO

@dataclass
class PoolSnapshot:
    base_reserve: Decimal
    token_reserve: Decimal

    @property
    def priced(self) -> bool:
        return self.token_reserve > 0

@dataclass
class DerivedMetrics:
    price_base: Decimal
    price_usd: Decimal
    market_cap_usd: Decimal
    locked_base: Decimal
    progress_fraction: Decimal
    status: CurveStatus = CurveStatus.ACTIVE

    @property
    def graduated(self) -> bool:
        return self.status is CurveStatus.GRADUATED

@dataclass
class ExchangeRate:
    forward_rate: Decimal       # secondary per base
    inverse_rate: Decimal       # base per secondary
    reserve_base: Decimal
    reserve_secondary: Decimal

@dataclass
class PriceAlert:
    id: str
    subject_address: str
    subject_symbol: str
    condition: AlertCondition
    threshold_usd: Decimal
    created_at: int
    triggered: bool = False
    channel_id: int = 0
    guild_id: int = 0
    creator_id: int = 0
    note: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id, "subject_address": self.subject_address, "subject_symbol": self.subject_symbol,
            "condition": self.condition.value, "threshold_usd": str(self.threshold_usd),
            "created_at": self.created_at, "triggered": self.triggered,
            "channel_id": self.channel_id, "guild_id": self.guild_id, "creator_id": self.creator_id,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PriceAlert":
        return cls(
            id=str(d["id"]), subject_address=d["subject_address"], subject_symbol=d.get("subject_symbol", ""),
            condition=AlertCondition(str(d["condition"]).lower()), threshold_usd=Decimal(str(d["threshold_usd"])),
            created_at=int(d.get("created_at", 0)), triggered=bool(d.get("triggered", False)),
            channel_id=int(d.get("channel_id", 0)), guild_id=int(d.get("guild_id", 0)),
            creator_id=int(d.get("creator_id", 0)), note=d.get("note", ""),
        )

@dataclass
class PlatformStats:
    total_launches: int
    graduated_count: int
    total_locked_base: Decimal
    total_locked_usd: Decimal

@dataclass
class CurveEntry:
    """A watched curve together with whatever has been read for it so far."""
    address: str
    symbol: str = ""
    curve: Optional[CurveSnapshot] = None
    pool: Optional[PoolSnapshot] = None
