from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import numpy as np


@dataclass
class Table:
    time_s: np.ndarray
    columns: dict[str, np.ndarray]


def _detect_delimiter(header_line: str) -> str:
    semicolons = header_line.count(";")
    commas = header_line.count(",")
    return ";" if semicolons >= commas and semicolons > 0 else ","


def _parse_number(s: str) -> float:
    return float(s.strip().replace(",", "."))


def _detect_time_is_ms(max_time: float) -> bool:
    return max_time > 100


def _find_header_idx(lines: list[str], required: Iterable[str]) -> int:
    required = [r.lower() for r in required]
    for i, line in enumerate(lines):
        low = line.lower()
        if all(r in low for r in required):
            return i
    return -1


def _find_col(headers: list[str], candidates: Iterable[str]) -> int:
    candidates = [c.lower() for c in candidates]
    # Exact names win over substrings ("fz" must not match "fz_filtered" first).
    for i, h in enumerate(headers):
        if h in candidates:
            return i
    for i, h in enumerate(headers):
        for c in candidates:
            if c in h:
                return i
    return -1


def parse_csv_table(
    path: Path,
    time_candidates: Iterable[str],
    columns: dict[str, Iterable[str]],
    *,
    required: Iterable[str] = (),
) -> Table:
    """
    Parse a time-indexed CSV with one or more value columns.

    columns maps output names to header candidates. Columns listed in `required`
    must be present; the others come back as zeros when missing. Time in ms is
    detected (max > 100) and converted to s. Rows are sorted by time.
    """
    time_candidates = list(time_candidates)
    columns = {k: list(v) for k, v in columns.items()}
    required = set(required)

    text = path.read_text(encoding="utf-8", errors="ignore")
    lines = [l.strip() for l in text.splitlines() if l.strip() and not l.strip().startswith("#")]
    if not lines:
        raise ValueError(f"No valid rows found in {path.name}")

    header_idx = _find_header_idx(lines, required=["time"])
    if header_idx == -1:
        header_idx = 0

    header_line = lines[header_idx]
    delimiter = _detect_delimiter(header_line)
    headers = [h.strip().lower() for h in header_line.split(delimiter)]

    col_time = _find_col(headers, time_candidates)
    if col_time == -1:
        raise ValueError(f"Missing time column in {path.name}")

    col_idx: dict[str, int] = {}
    for name, candidates in columns.items():
        idx = _find_col(headers, candidates)
        if idx == -1 and name in required:
            raise ValueError(f"Missing column '{name}' in {path.name}")
        col_idx[name] = idx

    present = [col_time] + [i for i in col_idx.values() if i != -1]
    width = max(present)

    raw_rows: list[list[float]] = []
    for line in lines[header_idx + 1 :]:
        parts = line.split(delimiter)
        if len(parts) <= width:
            continue
        try:
            t = _parse_number(parts[col_time])
            vals = [_parse_number(parts[i]) if i != -1 else 0.0 for i in col_idx.values()]
        except ValueError:
            continue
        raw_rows.append([t] + vals)

    if not raw_rows:
        raise ValueError(f"No valid rows found in {path.name}")

    data = np.asarray(raw_rows, dtype=float)
    data = data[np.argsort(data[:, 0], kind="stable")]

    t = data[:, 0]
    if _detect_time_is_ms(float(np.max(t))):
        t = t / 1000.0

    return Table(
        time_s=t,
        columns={name: data[:, 1 + j] for j, name in enumerate(col_idx.keys())},
    )
