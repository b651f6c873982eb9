"""
Fix log parser: read recorded location fixes from CSV or JSON-lines files.

Columns/keys (aliases in brackets):
  lat [latitude], lng [lon, longitude], timestamp [ts] in epoch ms,
  accuracy [acc] in metres, optional.
"""

import csv
import json
import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Optional, TextIO

from trk.tracking.types import Fix
from trk.utils.log import get_logger

logger = get_logger(__name__)

_LAT_KEYS = ("lat", "latitude")
_LNG_KEYS = ("lng", "lon", "longitude")
_TS_KEYS = ("timestamp", "ts")
_ACC_KEYS = ("accuracy", "acc")


@dataclass
class ParseStats:
    """Rows seen and rows skipped while reading a fix log."""
    rows_total: int = 0
    rows_skipped: int = 0


def _pick(row: Mapping, keys: tuple[str, ...]):
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def row_to_fix(row: Mapping) -> Fix:
    """
    Build a Fix from a CSV row or decoded JSON object.

    Raises
    ------
    ValueError
        If latitude, longitude or timestamp is missing, not numeric or not finite.
    """
    lat, lng, ts = _pick(row, _LAT_KEYS), _pick(row, _LNG_KEYS), _pick(row, _TS_KEYS)
    if lat is None or lng is None or ts is None:
        raise ValueError(f"incomplete fix: {dict(row)}")
    lat, lng, ts = float(lat), float(lng), float(ts)
    if not (math.isfinite(lat) and math.isfinite(lng) and math.isfinite(ts)):
        raise ValueError(f"non-finite fix: {dict(row)}")
    acc = _pick(row, _ACC_KEYS)
    return Fix(
        lat=lat,
        lng=lng,
        ts=int(ts),
        accuracy=None if acc is None else float(acc),
    )


def _iter_csv(f: TextIO, stats: ParseStats) -> Iterator[Fix]:
    for row in csv.DictReader(f):
        stats.rows_total += 1
        try:
            yield row_to_fix(row)
        except (ValueError, TypeError):
            stats.rows_skipped += 1


def _iter_jsonl(f: TextIO, stats: ParseStats) -> Iterator[Fix]:
    for line in f:
        line = line.strip()
        if not line:
            continue
        stats.rows_total += 1
        try:
            yield row_to_fix(json.loads(line))
        except (ValueError, TypeError, AttributeError):
            stats.rows_skipped += 1


def iter_fixes(path: str, stats: Optional[ParseStats] = None) -> Iterator[Fix]:
    """
    Yield fixes from a .csv file or a JSON-lines file ("-" reads JSON lines from stdin).

    Malformed rows are skipped and counted in `stats`.
    """
    stats = stats if stats is not None else ParseStats()
    if path == "-":
        yield from _iter_jsonl(sys.stdin, stats)
    else:
        p = Path(path)
        with p.open("r", encoding="utf-8", newline="") as f:
            if p.suffix.lower() == ".csv":
                yield from _iter_csv(f, stats)
            else:
                yield from _iter_jsonl(f, stats)
    if stats.rows_skipped:
        logger.warning("Skipped %d of %d malformed fix rows in %s", stats.rows_skipped, stats.rows_total, path)
