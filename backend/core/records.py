"""
records.py — Test record ingestion and normalization.

Handles:
- Mark → percentage conversion (structured and legacy bare-number marks)
- Date parsing (date-only semantics, time-of-day ignored)
- Explicit week-of-month tags vs. Monday-aligned calendar weeks
- Period keys: YYYY, YYYY-MM, YYYY-MM-wN or ISO Monday date
- Per-class subject filtering
- Skip report for records that cannot be placed in a period
"""

import logging
import math
import re
from datetime import date, datetime, timedelta
from numbers import Number
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

LEGACY_TOTAL = 100
MAX_WEEK_OF_MONTH = 5

ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

MARKS_COLUMNS = ["index", "date", "subject", "percentage", "week_key", "month_key", "year_key"]


# ── Marks ───────────────────────────────────────────────────────────

def is_number(value: Any) -> bool:
    """True for finite int/float values; bools and numeric strings are not numbers."""
    if isinstance(value, bool) or not isinstance(value, Number):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def normalize_mark(mark: Any) -> Optional[float]:
    """
    Convert one mark to a 0-100 percentage.

    Structured marks are {obtained, total}; a bare number is a legacy mark
    scored against 100. Returns None when the mark cannot contribute.
    """
    if isinstance(mark, dict):
        obtained = mark.get("obtained")
        total = mark.get("total")
    elif is_number(mark):
        obtained, total = mark, LEGACY_TOTAL
    else:
        return None

    if not (is_number(obtained) and is_number(total)):
        return None
    if total <= 0:
        return None
    return float(obtained) / float(total) * 100


# ── Dates & Weeks ───────────────────────────────────────────────────

def parse_date(value: Any) -> Optional[date]:
    """Return the calendar date of a record, or None if it can't be read."""
    if isinstance(value, datetime):
        return None if pd.isna(value) else value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not ISO_DATE_PREFIX.match(raw):
        return None
    ts = pd.to_datetime(raw, errors="coerce")
    if pd.isna(ts):
        return None
    # The written calendar date wins over any UTC offset.
    return ts.date()


def parse_week(value: Any) -> Optional[int]:
    """Explicit week-of-month tag (1-5), or None when absent/unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if not is_number(value) or float(value) != int(value):
        return None
    week = int(value)
    if 1 <= week <= MAX_WEEK_OF_MONTH:
        return week
    return None


def week_start(d: date) -> date:
    """Monday of the calendar week containing d."""
    return d - timedelta(days=d.weekday())


def derive_period_keys(d: date, week: Optional[int] = None) -> Dict[str, str]:
    """Week, month and year grouping keys for one record."""
    month_key = f"{d.year:04d}-{d.month:02d}"
    if week is not None:
        week_key = f"{month_key}-w{week}"
    else:
        week_key = week_start(d).isoformat()
    return {
        "week": week_key,
        "month": month_key,
        "year": f"{d.year:04d}",
    }


# ── Records ─────────────────────────────────────────────────────────

def _record_id(raw: Dict[str, Any]) -> Any:
    rid = raw.get("id")
    if rid is None:
        rid = raw.get("_id")
    return rid if rid is None else str(rid)


def parse_record(
    raw: Any,
    index: int,
    subjects: Optional[Iterable[str]] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Parse one raw test record.

    Returns (record, None) for a usable record or (None, reason) when the
    record has to be skipped. Individual bad marks never skip a record;
    they are left out of `scores` and counted in `excluded_marks`.
    """
    if not isinstance(raw, dict):
        return None, "record is not an object"

    d = parse_date(raw.get("date"))
    if d is None:
        return None, f"unreadable date: {raw.get('date')!r}"

    week = parse_week(raw.get("week"))
    allowed = set(subjects) if subjects is not None else None

    marks = raw.get("marks") or {}
    if not isinstance(marks, dict):
        marks = {}

    scores: Dict[str, float] = {}
    excluded = 0
    for subject, mark in marks.items():
        subject = str(subject)
        if allowed is not None and subject not in allowed:
            continue
        pct = normalize_mark(mark)
        if pct is None:
            excluded += 1
            continue
        scores[subject] = pct

    return {
        "index": index,
        "id": _record_id(raw),
        "date": d,
        "week": week,
        "week_tag_ignored": raw.get("week") not in (None, "") and week is None,
        "scores": scores,
        "excluded_marks": excluded,
        "keys": derive_period_keys(d, week),
    }, None


def parse_records(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Parse a list of raw test records and return (records, report).
    """
    tests = tests or []
    subjects = list(subjects) if subjects is not None else None

    report: Dict[str, Any] = {
        "total_records": len(tests),
        "valid_records": 0,
        "skipped": [],
        "excluded_marks": 0,
        "steps": [],
        "warnings": [],
    }

    records: List[Dict[str, Any]] = []
    ignored_week_tags = 0
    for i, raw in enumerate(tests):
        record, reason = parse_record(raw, i, subjects=subjects)
        if record is None:
            rid = _record_id(raw) if isinstance(raw, dict) else None
            logger.debug(f"Skipping test record {i} ({rid}): {reason}")
            report["skipped"].append({"index": i, "id": rid, "reason": reason})
            continue
        report["excluded_marks"] += record["excluded_marks"]
        if record["week_tag_ignored"]:
            ignored_week_tags += 1
        records.append(record)

    report["valid_records"] = len(records)
    report["steps"].append(f"Parsed {len(records)} of {len(tests)} test records.")
    if subjects is not None:
        report["steps"].append(f"Restricted marks to subjects: {subjects}")

    if report["skipped"]:
        report["warnings"].append(
            f"{len(report['skipped'])} records have unreadable dates and were excluded."
        )
    if report["excluded_marks"]:
        report["warnings"].append(
            f"{report['excluded_marks']} marks have a missing, non-numeric or non-positive "
            "total. They are excluded from every aggregate."
        )
    if ignored_week_tags:
        report["warnings"].append(
            f"{ignored_week_tags} records have a week tag outside 1-{MAX_WEEK_OF_MONTH}; "
            "their calendar week was used instead."
        )

    return records, report


def marks_frame(records: List[Dict[str, Any]]) -> pd.DataFrame:
    """Long-format DataFrame with one row per valid mark."""
    rows = [
        {
            "index": r["index"],
            "date": r["date"],
            "subject": subject,
            "percentage": pct,
            "week_key": r["keys"]["week"],
            "month_key": r["keys"]["month"],
            "year_key": r["keys"]["year"],
        }
        for r in records
        for subject, pct in r["scores"].items()
    ]
    return pd.DataFrame(rows, columns=MARKS_COLUMNS)
