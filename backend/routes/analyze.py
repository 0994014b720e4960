"""
Analyze routes — marks analytics API endpoints.
"""

import os
from fastapi import APIRouter, HTTPException

from core.records import parse_records
from core.stats import (
    compute_stats, compute_cumulative_weekly,
    compute_period_view, filter_tests_by_period, list_periods,
)
from core.trends import (
    classify_trend, compute_consistency,
    compute_progress_rate, compute_subject_progress,
)
from core.insights import generate_subject_insights

router = APIRouter()

DEFAULT_SUBJECTS = [
    s.strip()
    for s in os.getenv("DEFAULT_SUBJECTS", "English,Hindi,Maths,Science,Social Science").split(",")
    if s.strip()
]
TREND_STABLE_BAND = float(os.getenv("TREND_STABLE_BAND", "0.5"))


def _tests_from_payload(payload: dict) -> list:
    """Extract the test records from a request payload."""
    tests = payload.get("tests")
    if not tests or not isinstance(tests, list):
        raise HTTPException(400, "No test records provided.")
    return tests


def _subjects_from_payload(payload: dict) -> list:
    """Class subject list from the payload, falling back to the configured default."""
    subjects = payload.get("subjects")
    if subjects is None:
        return DEFAULT_SUBJECTS
    if not isinstance(subjects, list):
        raise HTTPException(400, "'subjects' must be a list of subject names.")
    return [str(s) for s in subjects]


@router.post("/stats")
async def stats(payload: dict):
    """Weekly, monthly, annual and overall averages plus the parse report."""
    tests = payload.get("tests") or []
    if not isinstance(tests, list):
        raise HTTPException(400, "'tests' must be a list of test records.")
    subjects = _subjects_from_payload(payload)
    _, cleaning_report = parse_records(tests, subjects=subjects)
    result = compute_stats(tests, subjects=subjects)
    result["periods"] = list_periods(tests)
    result["cleaning_report"] = cleaning_report
    return result


@router.post("/cumulative-weekly")
async def cumulative_weekly(payload: dict):
    """Running weekly averages from precomputed weekly stats or raw tests."""
    weekly = payload.get("weekly")
    if weekly is not None:
        if not isinstance(weekly, list) or not all(
            isinstance(w, dict) and isinstance(w.get("stats"), dict) for w in weekly
        ):
            raise HTTPException(400, "'weekly' must be a list of weekly stats.")
        return {"cumulative_weekly": compute_cumulative_weekly(weekly)}

    tests = _tests_from_payload(payload)
    period = payload.get("period")
    if period:
        tests = filter_tests_by_period(tests, period)
    result = compute_stats(tests, subjects=_subjects_from_payload(payload))
    return {"cumulative_weekly": compute_cumulative_weekly(result["weekly"])}


@router.post("/period/{period_key}")
async def period_view(period_key: str, payload: dict):
    """Dashboard view of one month (YYYY-MM) or year (YYYY)."""
    tests = _tests_from_payload(payload)
    result = compute_period_view(tests, period_key, subjects=_subjects_from_payload(payload))
    if result is None:
        raise HTTPException(404, f"No test records found for period '{period_key}'.")
    return result


@router.post("/progress-rate")
async def progress_rate(payload: dict):
    """Least-squares progress rate of an ordered score series."""
    scores = payload.get("scores")
    if not isinstance(scores, list):
        raise HTTPException(400, "Provide 'scores' as a list of numbers.")
    rate = compute_progress_rate(scores)
    return {"progress_rate": rate, "trend": classify_trend(rate, stable_band=TREND_STABLE_BAND)}


@router.post("/consistency")
async def consistency(payload: dict):
    """Per-subject score variation and consistency label."""
    tests = _tests_from_payload(payload)
    return compute_consistency(tests, subjects=_subjects_from_payload(payload))


@router.post("/subjects")
async def subjects(payload: dict):
    """Per-subject progress: average, highest, lowest, rate, trend."""
    tests = _tests_from_payload(payload)
    return compute_subject_progress(
        tests, subjects=_subjects_from_payload(payload), stable_band=TREND_STABLE_BAND,
    )


@router.post("/insights")
async def insights(payload: dict):
    """Generate all rule-based subject insights."""
    tests = _tests_from_payload(payload)
    return generate_subject_insights(
        tests, subjects=_subjects_from_payload(payload), stable_band=TREND_STABLE_BAND,
    )
