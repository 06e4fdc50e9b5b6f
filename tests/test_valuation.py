from decimal import Decimal

from curvebot.models import CurveSnapshot, CurveEntry, CurveStatus
from curvebot.reader import parse_curve, parse_pool
from curvebot.valuation import (value_curve, progress_fraction, render_metrics, platform_stats,
                                rank_by_market_cap, about_to_graduate, GraduationTracker, curve_status)

from conftest import pool

RATE = Decimal("0.05")

def curve(price="0.002", reserves="150", bps=7500, graduated=False):
    return CurveSnapshot(current_price=Decimal(price), real_base_reserves=Decimal(reserves),
                         progress_bps=bps, graduated=graduated)

def test_active_curve_scenario():
    snap = parse_curve({"currentPrice": "0.002", "realQuaiReserves": "150", "progress": 7500, "graduated": False})
    m = value_curve(snap, None, RATE)
    assert m.price_base == Decimal("0.002")
    assert m.price_usd == Decimal("0.0001")
    assert m.progress_fraction == Decimal("0.75")
    assert m.locked_base == Decimal("150")
    assert m.market_cap_usd == Decimal("100000")
    assert m.status is CurveStatus.ACTIVE

def test_graduated_curve_priced_by_pool():
    snap = curve(graduated=True, bps=10000)
    m = value_curve(snap, parse_pool({"reserveQuai": "5000", "reserveToken": "1000000"}), RATE)
    assert m.price_base == Decimal("0.005")
    assert m.price_usd == Decimal("0.00025")
    assert m.locked_base == Decimal("5000")
    assert m.graduated

def test_active_price_is_curve_price_even_with_pool():
    for price in ("0", "0.000000001", "0.002", "3.5"):
        m = value_curve(curve(price=price), pool("5000", "1000000"), RATE)
        assert m.price_base == Decimal(price)

def test_graduated_with_empty_pool_falls_back_to_curve_price():
    grad = value_curve(curve(graduated=True), pool("5000", "0"), RATE)
    active = value_curve(curve(), None, RATE)
    assert grad.price_base == active.price_base
    assert grad.locked_base == active.locked_base
    assert grad.price_usd.is_finite()

def test_graduated_without_pool_snapshot_falls_back():
    m = value_curve(curve(graduated=True), None, RATE)
    assert m.price_base == Decimal("0.002")

def test_missing_curve_is_not_available():
    assert value_curve(None, pool("1", "1"), RATE) is None

def test_progress_fraction_bounded_and_monotonic():
    values = [progress_fraction(b) for b in (-5, 0, 1, 2500, 9999, 10000, 12000)]
    assert values == sorted(values)
    assert all(Decimal(0) <= v <= Decimal(1) for v in values)
    assert progress_fraction(10000) == 1

def test_render_zero_price_is_canonical_zero():
    out = render_metrics(value_curve(curve(price="0", reserves="0", bps=0), None, RATE))
    assert out["Price (USD)"] == "$0.00"
    assert out["Market Cap"] == "$0.00"
    assert out["Progress"] == "0.0%"

def test_render_graduated_and_loading():
    out = render_metrics(value_curve(curve(graduated=True, bps=3000), pool("5000", "1000000"), RATE), base_symbol="QUAI")
    assert out["Progress"] == "Graduated"
    assert out["Liquidity"] == "5,000.00 QUAI"
    assert set(render_metrics(None, loading=True).values()) == {"…"}

def test_platform_stats():
    entries = [
        CurveEntry("0xa", curve=curve(reserves="150")),
        CurveEntry("0xb", curve=curve(graduated=True), pool=pool("5000", "1000000")),
        CurveEntry("0xc", curve=curve(graduated=True)),
        CurveEntry("0xd"),
        CurveEntry("0xe", curve=curve(graduated=True), pool=pool("5000", "0")),
    ]
    s = platform_stats(entries, RATE)
    assert s.total_launches == 5
    assert s.graduated_count == 3
    # graduated curves without a priced pool count their curve reserves, as value_curve does
    assert s.total_locked_base == Decimal("5450")
    assert s.total_locked_usd == Decimal("272.5")
    e = entries[4]
    assert value_curve(e.curve, e.pool, RATE).locked_base == Decimal("150")

def test_rank_and_about_to_graduate():
    a = CurveEntry("0xa", curve=curve(price="0.001", bps=9000))
    b = CurveEntry("0xb", curve=curve(graduated=True), pool=pool("5000", "1000000"))
    c = CurveEntry("0xc", curve=curve(price="0.003", bps=100))
    assert [e.address for e in rank_by_market_cap([a, b, c], RATE)] == ["0xb", "0xc", "0xa"]
    assert [e.address for e in about_to_graduate([a, b, c], limit=5)] == ["0xa", "0xc"]

def test_graduation_is_one_way():
    t = GraduationTracker()
    assert t.observe("0xA", curve()) is CurveStatus.ACTIVE
    assert t.observe("0xa", curve(graduated=True)) is CurveStatus.GRADUATED
    entry = t.reconcile(CurveEntry("0xa", curve=curve(graduated=False)))
    assert entry.curve.graduated
    assert t.anomalies == 1
    assert curve_status(entry.curve) is CurveStatus.GRADUATED
