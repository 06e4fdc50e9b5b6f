import asyncio, aiohttp
from typing import Any, Dict, Optional
from web3 import Web3

from .config import RPC_URL, RPC_TIMEOUT_SEC, RPC_CALL_METHOD
from .constants import CURVE_FIELDS, POOL_FIELDS, ZERO_ADDRESS
from .helpers import to_decimal, is_evm_address
from .logging_setup import log
from .models import CurveSnapshot, PoolSnapshot, CurveEntry

class ReserveReadError(Exception):
    """A remote read failed or returned something unusable."""

def selector(signature: str) -> str:
    return "0x" + bytes(Web3.keccak(text=signature)[:4]).hex()

SELECTORS: Dict[str, str] = {sig: selector(sig) for sig in CURVE_FIELDS + POOL_FIELDS}

def _field(sig: str) -> str: return sig.split("(", 1)[0]

def decode_word(word: str, kind: str) -> Any:
    """Decode one 32-byte return word: 'uint' -> int, 'bool' -> bool, 'address' -> hex address."""
    body = (word or "").removeprefix("0x")
    if not body:
        raise ReserveReadError("empty return data")
    body = body[:64]
    if kind == "address": return "0x" + body[-40:]
    try:
        n = int(body, 16)
    except ValueError:
        raise ReserveReadError(f"malformed return data: {word!r}")
    return n != 0 if kind == "bool" else n

def parse_curve(raw: Dict[str, Any]) -> CurveSnapshot:
    """Build a CurveSnapshot from reader fields; numbers may be wei ints, decimal strings or Decimals."""
    return CurveSnapshot(
        current_price=to_decimal(raw.get("currentPrice")),
        real_base_reserves=to_decimal(raw.get("realQuaiReserves")),
        progress_bps=int(raw.get("progress") or 0),
        graduated=bool(raw.get("graduated")),
        pool=str(raw.get("pool") or ZERO_ADDRESS),
        real_token_reserves=to_decimal(raw.get("realTokenReserves")),
        virtual_base_reserves=to_decimal(raw.get("virtualQuaiReserves")),
        virtual_token_reserves=to_decimal(raw.get("virtualTokenReserves")),
    )

def parse_pool(raw: Dict[str, Any]) -> PoolSnapshot:
    return PoolSnapshot(base_reserve=to_decimal(raw.get("reserveQuai")), token_reserve=to_decimal(raw.get("reserveToken")))

class ReserveReader:
    def __init__(self, rpc_url: str = RPC_URL, *, timeout: int = RPC_TIMEOUT_SEC, call_method: str = RPC_CALL_METHOD):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.call_method = call_method

    async def rpc(self, method: str, params: list) -> Any:
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as s:
                async with s.post(self.rpc_url, json={"jsonrpc":"2.0","id":1,"method":method,"params":params}) as r:
                    if r.status != 200:
                        raise ReserveReadError(f"RPC {method} returned HTTP {r.status}")
                    body = await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ReserveReadError(f"RPC {method} failed: {e.__class__.__name__}") from e
        if not isinstance(body, dict):
            raise ReserveReadError(f"RPC {method} returned malformed body")
        if body.get("error"):
            msg = (body["error"] or {}).get("message") if isinstance(body["error"], dict) else body["error"]
            raise ReserveReadError(f"RPC {method} error: {msg}")
        return body.get("result")

    async def call(self, address: str, signature: str) -> str:
        res = await self.rpc(self.call_method, [{"to": address, "data": SELECTORS[signature]}, "latest"])
        if not isinstance(res, str):
            raise ReserveReadError(f"{signature} on {address} returned no data")
        return res

    async def _read(self, address: str, kinds: Dict[str, str]) -> Dict[str, Any]:
        if not is_evm_address(address):
            raise ReserveReadError(f"not a contract address: {address!r}")
        sigs = list(kinds)
        words = await asyncio.gather(*[self.call(address, sig) for sig in sigs])
        return {_field(sig): decode_word(w, kinds[sig]) for sig, w in zip(sigs, words)}

    async def fetch_curve(self, address: str) -> CurveSnapshot:
        kinds = {sig: "uint" for sig in CURVE_FIELDS}
        kinds["graduated()"] = "bool"; kinds["pool()"] = "address"
        return parse_curve(await self._read(address, kinds))

    async def fetch_pool(self, address: str) -> PoolSnapshot:
        return parse_pool(await self._read(address, {sig: "uint" for sig in POOL_FIELDS}))

    async def fetch_entry(self, address: str, symbol: str = "") -> CurveEntry:
        """Curve state plus pool reserves once the curve has graduated."""
        curve = await self.fetch_curve(address)
        pool: Optional[PoolSnapshot] = None
        if curve.graduated and curve.pool.lower() != ZERO_ADDRESS:
            try:
                pool = await self.fetch_pool(curve.pool)
            except ReserveReadError as e:
                log.warning(f"Pool read failed for {address} ({curve.pool}): {e}")
        return CurveEntry(address=address, symbol=symbol, curve=curve, pool=pool)
