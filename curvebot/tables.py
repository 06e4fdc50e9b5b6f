from decimal import Decimal
from typing import Dict, List, Optional
from .helpers import fmt_usd_price, humanize, when_str, short_address
from .models import AlertCondition, PriceAlert

def _cut(s, w):
    s=str(s).replace("\n"," ").strip()
    return s if len(s)<=w else s[:max(1,w-1)]+"…"

def _cell(v, w, a):
    s=_cut(v,w)
    return s.rjust(w) if a=="r" else (s.center(w) if a=="c" else s.ljust(w))

def render_table(headers: List[str], rows: List[List[str]], widths: List[int], aligns: List[str]) -> str:
    head="  ".join(_cell(h,w,'l') for h,w in zip(headers,widths))
    sep="  ".join("─"*w for w in widths)
    body="\n".join("  ".join(_cell(v,w,a) for v,w,a in zip(r,widths,aligns)) for r in rows) or "—"
    return f"```\n{head}\n{sep}\n{body}\n```"

def alerts_table(alerts: List[PriceAlert], current_by_addr: Dict[str, Optional[Decimal]]) -> str:
    rows=[]
    for a in alerts:
        rows.append([
            a.id.split("-")[-1],
            a.subject_symbol or short_address(a.subject_address),
            "≥" if a.condition is AlertCondition.ABOVE else "≤",
            fmt_usd_price(a.threshold_usd),
            fmt_usd_price(current_by_addr.get(a.subject_address)),
            when_str(a.created_at),
        ])
    return render_table(["ID","Token","","Target","Current","Set"], rows, [4,8,1,9,9,11], ["l","l","c","r","r","l"])

def history_table(alerts: List[PriceAlert]) -> str:
    rows=[[when_str(a.created_at), a.subject_symbol or short_address(a.subject_address),
           "≥" if a.condition is AlertCondition.ABOVE else "≤", fmt_usd_price(a.threshold_usd),
           "FIRED" if a.triggered else "OPEN"] for a in alerts]
    return render_table(["Set","Token","","Target","State"], rows, [11,8,1,9,5], ["l","l","c","r","l"])

def watchlist_table(rows: List[List[str]]) -> str:
    return render_table(["#","Token","Price","MCap","Prog"], rows, [2,12,9,9,9], ["r","l","r","r","r"])

def mcap_cell(mcap: Decimal) -> str:
    return f"${humanize(mcap)}" if mcap > 0 else "$0.00"
