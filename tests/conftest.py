import asyncio
from decimal import Decimal
import pytest

from curvebot.models import PoolSnapshot
from curvebot.reader import ReserveReadError
from curvebot.storage import MemoryStorage

POOL = "0x00" + "ab" * 19
CURVE = "0x00" + "cd" * 19

def pool(base, token) -> PoolSnapshot:
    return PoolSnapshot(base_reserve=Decimal(base), token_reserve=Decimal(token))

def word(n: int) -> str:
    return "0x" + format(n, "064x")

class StubReader:
    """Serves pool snapshots (or raises) from a queue; the last item repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch_pool(self, address):
        self.calls += 1
        r = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

class SlowReader:
    def __init__(self, result):
        self.result = result
        self.calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_pool(self, address):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return self.result

@pytest.fixture
def storage():
    return MemoryStorage()

@pytest.fixture
def read_error():
    return ReserveReadError("RPC quai_call failed: ClientConnectorError")
