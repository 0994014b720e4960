"""
trends.py — Per-subject progress and consistency analysis.

- Progress rate: least-squares slope of percentage over test index (numpy polyfit)
- Trend label derived from that slope with a single stability band
- Consistency: population standard deviation bucketed into four labels
- Subject progress summary (average, highest, lowest, rate, trend)
"""

from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from core.records import is_number, parse_records

# Slope (points per test) inside which a subject is considered stable.
DEFAULT_STABLE_BAND = 0.5

# (upper bound inclusive, status, display colour)
CONSISTENCY_BANDS = [
    (5.0, "Very Stable", "#22c55e"),
    (10.0, "Consistent", "var(--accent)"),
    (15.0, "Variable", "#eab308"),
]
VOLATILE = ("Volatile", "#ef4444")
NEW_SUBJECT = ("New", "var(--muted)")


def _finite(values: Iterable[Any]) -> List[float]:
    return [float(v) for v in values if is_number(v)]


# ── Progress Rate ───────────────────────────────────────────────────

def compute_progress_rate(scores: Iterable[Any]) -> Optional[float]:
    """
    Slope of score vs. test index, in percentage points per test.

    Scores must already be in chronological order; they are not re-sorted.
    Returns None with fewer than two scores.
    """
    y = _finite(scores)
    if len(y) < 2:
        return None
    x = np.arange(len(y))
    slope = float(np.polyfit(x, y, 1)[0])
    return round(slope, 2)


def classify_trend(rate: Optional[float], stable_band: float = DEFAULT_STABLE_BAND) -> str:
    """Label a progress rate as improving, declining or stable."""
    if rate is None:
        return "insufficient_data"
    if rate > stable_band:
        return "improving"
    if rate < -stable_band:
        return "declining"
    return "stable"


def _scores_by_subject(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
) -> Dict[str, List[float]]:
    """Chronological percentages per subject, in first-seen subject order."""
    records, _ = parse_records(tests, subjects=subjects)
    # Persistence returns newest first; sort by date, keeping input order on ties.
    records = sorted(records, key=lambda r: (r["date"], r["index"]))
    series: Dict[str, List[float]] = {}
    for record in records:
        for subject, pct in record["scores"].items():
            series.setdefault(subject, []).append(pct)
    return series


def subject_scores(tests: Optional[List[Any]], subject: str) -> List[float]:
    """Percentages for one subject, oldest test first."""
    return _scores_by_subject(tests, subjects=[subject]).get(subject, [])


# ── Consistency ─────────────────────────────────────────────────────

def classify_variation(std_dev: float):
    """Map a standard deviation to (status, colour)."""
    for upper, status, color in CONSISTENCY_BANDS:
        if std_dev <= upper:
            return status, color
    return VOLATILE


def consistency_for_scores(subject: str, scores: List[float]) -> Dict[str, Any]:
    """Consistency result for one subject's percentages (order-independent)."""
    if len(scores) < 2:
        status, color = NEW_SUBJECT
        return {
            "subject": subject,
            "label": subject,
            "variation": 0,
            "status": status,
            "color": color,
            "count": len(scores),
        }

    std_dev = float(np.std(scores))
    status, color = classify_variation(std_dev)
    return {
        "subject": subject,
        "label": subject,
        "variation": round(std_dev, 1),
        "status": status,
        "color": color,
        "count": len(scores),
    }


def compute_consistency(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    """One consistency result per subject encountered in the tests."""
    series = _scores_by_subject(tests, subjects=subjects)
    return [consistency_for_scores(subject, scores) for subject, scores in series.items()]


# ── Subject Progress ────────────────────────────────────────────────

def compute_subject_progress(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
    stable_band: float = DEFAULT_STABLE_BAND,
) -> List[Dict[str, Any]]:
    """
    Progress summary per subject.

    With a subject list, every listed subject is reported (empty ones with
    None values); without one, the subjects found in the tests are used.
    """
    subjects = list(subjects) if subjects is not None else None
    series = _scores_by_subject(tests, subjects=subjects)
    ordered = subjects if subjects is not None else list(series.keys())

    rows = []
    for subject in ordered:
        scores = series.get(subject, [])
        if not scores:
            rows.append({
                "subject": subject,
                "label": subject,
                "total_tests": 0,
                "average_score": None,
                "highest": None,
                "lowest": None,
                "progress_rate": None,
                "trend": classify_trend(None),
            })
            continue

        rate = compute_progress_rate(scores)
        rows.append({
            "subject": subject,
            "label": subject,
            "total_tests": len(scores),
            "average_score": round(float(np.mean(scores)), 1),
            "highest": round(max(scores), 1),
            "lowest": round(min(scores), 1),
            "progress_rate": rate,
            "trend": classify_trend(rate, stable_band=stable_band),
        })
    return rows
