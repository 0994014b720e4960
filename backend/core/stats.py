"""
stats.py — Period aggregation of dated, per-subject test marks.

Computes:
- Week / month / year buckets (partition of the parsed records)
- Per-bucket rollups: per-subject mean % and weighted overall mean %
- Weekly, monthly, annual and all-time views (most recent first)
- Cumulative (running) weekly averages, oldest first
- Single-month dashboard views

Pure functions: nothing here reads the clock or mutates its input.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from core.records import marks_frame, parse_date, parse_records

PERIOD_LEVELS = ("week", "month", "year")

EXPLICIT_WEEK = re.compile(r"^(.*)-w(\d+)$")
MONTH_KEY = re.compile(r"^\d{4}-\d{2}$")
YEAR_KEY = re.compile(r"^\d{4}$")


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    """Convert to float rounded to 2 places, or None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


# ── Grouping ────────────────────────────────────────────────────────

def group_records(records: List[Dict[str, Any]]) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
    """Bucket already-parsed records by week, month and year key."""
    groups: Dict[str, Dict[str, List[Dict[str, Any]]]] = {level: {} for level in PERIOD_LEVELS}
    for record in records:
        for level in PERIOD_LEVELS:
            groups[level].setdefault(record["keys"][level], []).append(record)
    return groups


def group_by_period(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
    """
    Parse raw test records and bucket them per period level.

    Each record with a readable date lands in exactly one bucket per level.
    Records with an unreadable date land in none.
    """
    records, _ = parse_records(tests, subjects=subjects)
    return group_records(records)


# ── Rollups ─────────────────────────────────────────────────────────

def summarize_group(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reduce one bucket of parsed records to per-subject and overall means.

    `overall` is the mean of every individual mark in the bucket, so a
    subject with more graded tests weighs more than one with fewer.
    """
    df = marks_frame(records)
    if df.empty:
        return {"per_subject": {}, "overall": None}

    subject_means = df.groupby("subject", sort=False)["percentage"].mean()
    return _sanitize({
        "per_subject": {str(s): _safe_float(m) for s, m in subject_means.items()},
        "overall": _safe_float(df["percentage"].mean()),
    })


def _rollup(buckets: Dict[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    rows = [
        {
            "period_key": key,
            "test_count": len(members),
            "stats": summarize_group(members),
        }
        for key, members in buckets.items()
    ]
    # Zero-padded keys: descending string order is most recent first.
    rows.sort(key=lambda r: r["period_key"], reverse=True)
    return rows


def compute_stats(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Weekly, monthly, annual and all-time statistics for a list of tests.

    Returns:
        {
            "weekly":  [{period_key, test_count, stats}, ...] newest first,
            "monthly": [...],
            "annual":  [...],
            "overall": {per_subject, overall},
        }
    Every value is None when there is no usable record at all.
    """
    records, _ = parse_records(tests, subjects=subjects)
    if not records:
        return {"weekly": None, "monthly": None, "annual": None, "overall": None}

    groups = group_records(records)
    return {
        "weekly": _rollup(groups["week"]),
        "monthly": _rollup(groups["month"]),
        "annual": _rollup(groups["year"]),
        "overall": summarize_group(records),
    }


# ── Cumulative Weekly ───────────────────────────────────────────────

def week_sort_key(period_key: str):
    """
    Ascending order for weekly keys.

    Explicit `YYYY-MM-wN` keys order by month, then N; calendar keys by
    their Monday date. When both styles are mixed, explicit weeks come first.
    """
    key = str(period_key)
    match = EXPLICIT_WEEK.match(key)
    if match:
        return (0, match.group(1), int(match.group(2)), key)
    d = parse_date(key)
    if d is not None:
        return (1, "", d.toordinal(), key)
    return (2, "", 0, key)


def compute_cumulative_weekly(weekly: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Running averages across weeks, oldest first.

    Week N carries the mean of the weekly values for weeks 1..N, per subject
    and overall. Each step is rounded to 2 places. Entries that are not
    mappings are skipped.
    """
    if not weekly:
        return []

    entries = [w for w in weekly if isinstance(w, dict)]
    ordered = sorted(entries, key=lambda w: week_sort_key(w.get("period_key", "")))

    subject_acc: Dict[str, Dict[str, float]] = {}
    overall_sum, overall_count = 0.0, 0
    cumulative = []
    for entry in ordered:
        stats = entry.get("stats")
        if not isinstance(stats, dict):
            stats = {}
        per_subject = stats.get("per_subject")
        if not isinstance(per_subject, dict):
            per_subject = {}
        for subject, value in per_subject.items():
            if _safe_float(value) is None:
                continue
            acc = subject_acc.setdefault(subject, {"sum": 0.0, "count": 0})
            acc["sum"] += float(value)
            acc["count"] += 1

        overall = stats.get("overall")
        if _safe_float(overall) is not None:
            overall_sum += float(overall)
            overall_count += 1

        cumulative.append({
            "period_key": entry.get("period_key"),
            "stats": {
                "per_subject": {
                    s: _safe_float(acc["sum"] / acc["count"]) for s, acc in subject_acc.items()
                },
                "overall": _safe_float(overall_sum / overall_count) if overall_count else None,
            },
        })

    return cumulative


# ── Period Views ────────────────────────────────────────────────────

def filter_tests_by_period(tests: Optional[List[Any]], period_key: str) -> List[Any]:
    """Raw tests whose month (YYYY-MM) or year (YYYY) matches period_key."""
    key = str(period_key).strip()
    if MONTH_KEY.match(key):
        level = "month"
    elif YEAR_KEY.match(key):
        level = "year"
    else:
        return []

    records, _ = parse_records(tests)
    selected = {r["index"] for r in records if r["keys"][level] == key}
    return [t for i, t in enumerate(tests or []) if i in selected]


def compute_period_view(
    tests: Optional[List[Any]],
    period_key: str,
    subjects: Optional[Iterable[str]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Dashboard view of one month or year.

    Returns None when no test falls in the period.
    """
    period_tests = filter_tests_by_period(tests, period_key)
    if not period_tests:
        return None

    subjects = list(subjects) if subjects is not None else None
    stats = compute_stats(period_tests, subjects=subjects)
    if stats["weekly"] is None:
        return None

    return {
        "period_key": str(period_key).strip(),
        "test_count": len(period_tests),
        "stats": stats,
        "cumulative_weekly": compute_cumulative_weekly(stats["weekly"]),
    }


def list_periods(tests: Optional[List[Any]]) -> Dict[str, List[str]]:
    """Month and year keys present in the data, newest first."""
    records, _ = parse_records(tests)
    months = sorted({r["keys"]["month"] for r in records}, reverse=True)
    years = sorted({r["keys"]["year"] for r in records}, reverse=True)
    return {"months": months, "years": years}
