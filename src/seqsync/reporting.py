"""
Reporting helpers (table or JSON) for apply results.

`print_rows` keeps only the columns that carry data and produces a compact
table for CLI usage. JSON output is also supported for machine consumption.
"""
from __future__ import annotations

import json
import sys
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterable, List, Optional, TextIO

COLUMNS = ["name", "op", "status", "id", "reason", "error"]
MANDATORY = {"name", "status"}


def _as_dict(row: Any) -> Dict[str, Any]:
    if is_dataclass(row):
        return asdict(row)
    return dict(row)


def _fmt(v: Any) -> str:
    s = "" if v is None else str(v).strip()
    if len(s) > 160:
        s = s[:159] + "…"
    return s or "—"


def print_rows(rows: Iterable[Any], fmt: str = "table", out: Optional[TextIO] = None) -> None:
    """Render result rows as a table or JSON.

    Args:
        rows: ApplyResult instances or plain dicts.
        fmt: Either ``"table"`` (default) or ``"json"``.
    """
    out = out or sys.stdout
    norm: List[Dict[str, Any]] = [_as_dict(r) for r in rows]

    if fmt == "json":
        print(json.dumps(norm, indent=2), file=out)
        return

    cols = [c for c in COLUMNS if c in MANDATORY or any(r.get(c) for r in norm)]
    widths = {c: len(c) for c in cols}
    for r in norm:
        for c in cols:
            widths[c] = max(widths[c], len(_fmt(r.get(c))))

    print("| " + " | ".join(c.ljust(widths[c]) for c in cols) + " |", file=out)
    print("| " + " | ".join("-" * widths[c] for c in cols) + " |", file=out)
    for r in norm:
        print("| " + " | ".join(_fmt(r.get(c)).ljust(widths[c]) for c in cols) + " |", file=out)


def summarize_counts(counts: Dict[str, int]) -> str:
    keys = ["CREATED", "UPDATED", "UNCHANGED", "DELETED", "PLANNED", "ERROR"]
    return " | ".join(f"{k}={counts.get(k, 0)}" for k in keys)
