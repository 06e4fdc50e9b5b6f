from decimal import Decimal
import pytest

from curvebot.alerts import PriceAlertEngine, InvalidAlertError, fetch_prices
from curvebot.models import AlertCondition, CurveEntry, CurveSnapshot
from curvebot.storage import MemoryStorage
from curvebot.valuation import GraduationTracker

from conftest import CURVE, POOL, pool

A = "0x" + "aa" * 20
B = "0x" + "bb" * 20

async def test_above_is_inclusive_at_boundary(storage):
    engine = PriceAlertEngine(storage)
    aid = engine.add(A, "PUMP", AlertCondition.ABOVE, 10)
    assert engine.evaluate({A: 9.999999}) == []
    fired = engine.evaluate({A: 10})
    assert [a.id for a in fired] == [aid]
    assert fired[0].triggered

async def test_below_is_inclusive_at_boundary(storage):
    engine = PriceAlertEngine(storage)
    engine.add(A, "PUMP", "below", "0.0002")
    assert engine.evaluate({A: Decimal("0.00020001")}) == []
    assert len(engine.evaluate({A: Decimal("0.0002")})) == 1

async def test_fires_at_most_once(storage):
    engine = PriceAlertEngine(storage)
    aid = engine.add(A, "PUMP", "above", 1)
    prices = {A: 5}
    assert [a.id for a in engine.evaluate(prices)] == [aid]
    assert engine.evaluate(prices) == []
    assert engine.active_alerts() == []
    assert engine.get(aid).triggered
    assert len(engine.alerts()) == 1

async def test_alerts_without_price_are_skipped(storage):
    engine = PriceAlertEngine(storage)
    engine.add(A, "PUMP", "above", 1)
    engine.add(B, "DUMP", "below", 1)
    fired = engine.evaluate({B: "0.5", "0xunrelated": 100})
    assert [a.subject_symbol for a in fired] == ["DUMP"]
    assert [a.subject_symbol for a in engine.active_alerts()] == ["PUMP"]
    assert engine.subjects() == [A]

async def test_address_case_does_not_matter(storage):
    engine = PriceAlertEngine(storage)
    engine.add(A.upper().replace("0X", "0x"), "PUMP", "above", 1)
    assert len(engine.evaluate({A: 2})) == 1

async def test_add_then_remove_restores_active_list(storage):
    engine = PriceAlertEngine(storage)
    engine.add(A, "PUMP", "above", 1)
    before = [a.id for a in engine.active_alerts()]
    aid = engine.add(B, "DUMP", "below", 2)
    assert engine.remove(aid) is True
    assert [a.id for a in engine.active_alerts()] == before
    assert engine.remove("missing-id") is False

@pytest.mark.parametrize("threshold", [0, -1, "abc", "NaN", "Infinity"])
def test_invalid_threshold_rejected(threshold):
    engine = PriceAlertEngine(MemoryStorage())
    with pytest.raises(InvalidAlertError):
        engine.add(A, "PUMP", "above", threshold)
    assert engine.alerts() == []

def test_invalid_condition_and_subject_rejected():
    engine = PriceAlertEngine(MemoryStorage())
    with pytest.raises(InvalidAlertError):
        engine.add(A, "PUMP", "sideways", 1)
    with pytest.raises(InvalidAlertError):
        engine.add("  ", "PUMP", "above", 1)

def test_add_persists_without_running_loop():
    storage = MemoryStorage()
    engine = PriceAlertEngine(storage)
    engine.add(A, "PUMP", "above", "0.5")
    assert storage.writes == 1
    assert storage.data

async def test_state_survives_restart(storage):
    engine = PriceAlertEngine(storage)
    a1 = engine.add(A, "PUMP", "above", "0.5", channel_id=7, creator_id=9, note="moon")
    a2 = engine.add(B, "DUMP", "below", "0.1")
    engine.evaluate({B: "0.05"})
    await engine.flush()

    again = PriceAlertEngine(storage)
    await again.load()
    assert [a.id for a in again.alerts()] == [a2, a1]
    assert [a.id for a in again.active_alerts()] == [a1]
    restored = again.get(a1)
    assert restored.threshold_usd == Decimal("0.5")
    assert restored.condition is AlertCondition.ABOVE
    assert (restored.channel_id, restored.creator_id, restored.note) == (7, 9, "moon")

async def test_load_tolerates_bad_data():
    engine = PriceAlertEngine(MemoryStorage({"quaipump_price_alerts": {"not": "a list"}}))
    await engine.load()
    assert engine.alerts() == []
    engine = PriceAlertEngine(MemoryStorage({"quaipump_price_alerts": [{"id": "x"}, {
        "id": "1-abcd", "subject_address": A, "subject_symbol": "P", "condition": "ABOVE",
        "threshold_usd": "1", "created_at": 1, "triggered": False}]}))
    await engine.load()
    assert [a.id for a in engine.alerts()] == ["1-abcd"]

async def test_ids_are_unique(storage):
    engine = PriceAlertEngine(storage)
    ids = {engine.add(A, "PUMP", "above", 1) for _ in range(200)}
    await engine.flush()
    assert len(ids) == 200

class EntryReader:
    def __init__(self, entries):
        self.entries = entries

    async def fetch_entry(self, address, symbol=""):
        e = self.entries[address]
        if isinstance(e, Exception):
            raise e
        return e

async def test_fetch_prices_values_curves_and_skips_failures(read_error):
    snap = CurveSnapshot(current_price=Decimal("0.002"), real_base_reserves=Decimal("150"), progress_bps=7500, graduated=False)
    grad = CurveSnapshot(current_price=Decimal("0.002"), real_base_reserves=Decimal("150"), progress_bps=10000, graduated=True, pool=POOL)
    reader = EntryReader({
        A: CurveEntry(A, curve=snap),
        B: CurveEntry(B, curve=grad, pool=pool("5000", "1000000")),
        CURVE: read_error,
    })
    prices = await fetch_prices(reader, GraduationTracker(), [A, B, CURVE], Decimal("0.05"))
    assert prices == {A: Decimal("0.0001"), B: Decimal("0.00025")}

async def test_fetch_prices_feeds_evaluate(storage):
    snap = CurveSnapshot(current_price=Decimal("0.002"), real_base_reserves=Decimal("150"), progress_bps=7500, graduated=False)
    engine = PriceAlertEngine(storage)
    aid = engine.add(A, "PUMP", "above", "0.0001")
    prices = await fetch_prices(EntryReader({A: CurveEntry(A, curve=snap)}), GraduationTracker(), engine.subjects(), Decimal("0.05"))
    assert [a.id for a in engine.evaluate(prices)] == [aid]
async def test_non_finite_price_is_ignored(storage):
    engine = PriceAlertEngine(storage)
    b = engine.add(B, "DUMP", "above", 1)
    a = engine.add(A, "PUMP", "above", 1)
    fired = engine.evaluate({A: 2, B: float("nan"), CURVE: "Infinity"})
    assert [x.id for x in fired] == [a]
    assert [x.id for x in engine.active_alerts()] == [b]
    await engine.flush()

    again = PriceAlertEngine(storage)
    await again.load()
    assert again.get(a).triggered
    assert not again.get(b).triggered

async def test_remove_is_persisted(storage):
    engine = PriceAlertEngine(storage)
    keep = engine.add(A, "PUMP", "above", 1)
    gone = engine.add(B, "DUMP", "below", 2)
    assert engine.remove(gone) is True
    await engine.flush()

    again = PriceAlertEngine(storage)
    await again.load()
    assert [x.id for x in again.alerts()] == [keep]
    assert again.get(gone) is None

class BrokenStorage(MemoryStorage):
    async def set(self, key, value):
        raise OSError("disk full")

def test_write_failure_without_running_loop_is_swallowed():
    engine = PriceAlertEngine(BrokenStorage())
    aid = engine.add(A, "PUMP", "above", 1)
    assert engine.evaluate({A: 2})[0].id == aid
    assert engine.remove(aid) is True
    assert engine.alerts() == []
