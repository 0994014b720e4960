"""
insights.py — Rule-based subject insight engine.

Evaluates subject progress and consistency from trends.py against a small
rule library. Each rule produces a structured insight object with:
id, subject, category, severity, title, narrative, supporting_data,
recommendation.

Categories: performance, trend, consistency, positive.
Severity levels: info, warning, critical.

Zero AI dependency — every insight is a deterministic threshold check.
"""

from typing import Any, Dict, Iterable, List, Optional

from core.trends import DEFAULT_STABLE_BAND, compute_consistency, compute_subject_progress
from core.narrative import (
    narrate_excellent_subject,
    narrate_good_subject,
    narrate_weak_subject,
    narrate_improving_trend,
    narrate_declining_trend,
    narrate_wide_range,
    narrate_volatile_subject,
    narrate_stable_subject,
    generate_executive_summary,
)

EXCELLENT_AVERAGE = 80
GOOD_AVERAGE = 60
WIDE_RANGE_POINTS = 30


def _slug(subject: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in subject.lower()).strip("_")


# ── Performance Insights ────────────────────────────────────────────

def _performance_insights(progress: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    insights: List[Dict[str, Any]] = []
    for row in progress:
        subject = row["subject"]
        average = row.get("average_score")
        if average is None:
            continue

        supporting = {
            "average_score": average,
            "total_tests": row["total_tests"],
            "highest": row["highest"],
            "lowest": row["lowest"],
        }
        if average >= EXCELLENT_AVERAGE:
            insights.append({
                "id": f"perf_excellent_{_slug(subject)}",
                "subject": subject,
                "category": "positive",
                "severity": "info",
                "title": f"Excellent Performance in {subject}",
                "narrative": narrate_excellent_subject(subject, average, row["total_tests"]),
                "supporting_data": supporting,
                "recommendation": "Maintain the current study routine for this subject.",
            })
        elif average >= GOOD_AVERAGE:
            insights.append({
                "id": f"perf_good_{_slug(subject)}",
                "subject": subject,
                "category": "performance",
                "severity": "info",
                "title": f"Good Performance in {subject}",
                "narrative": narrate_good_subject(subject, average),
                "supporting_data": supporting,
                "recommendation": "Target the weakest topics to push the average above 80%.",
            })
        else:
            insights.append({
                "id": f"perf_weak_{_slug(subject)}",
                "subject": subject,
                "category": "performance",
                "severity": "critical",
                "title": f"{subject} Needs More Attention",
                "narrative": narrate_weak_subject(subject, average),
                "supporting_data": supporting,
                "recommendation": (
                    "Schedule extra practice sessions and review recent test papers "
                    "with the subject teacher."
                ),
            })
    return insights


# ── Trend Insights ──────────────────────────────────────────────────

def _trend_insights(progress: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    insights: List[Dict[str, Any]] = []
    for row in progress:
        subject = row["subject"]
        rate = row.get("progress_rate")
        if row["trend"] == "improving":
            insights.append({
                "id": f"trend_improving_{_slug(subject)}",
                "subject": subject,
                "category": "positive",
                "severity": "info",
                "title": f"{subject} Is Improving",
                "narrative": narrate_improving_trend(subject, rate),
                "supporting_data": {"progress_rate": rate, "total_tests": row["total_tests"]},
                "recommendation": "Keep the momentum going with regular revision.",
            })
        elif row["trend"] == "declining":
            insights.append({
                "id": f"trend_declining_{_slug(subject)}",
                "subject": subject,
                "category": "trend",
                "severity": "warning",
                "title": f"{subject} Is Declining",
                "narrative": narrate_declining_trend(subject, rate),
                "supporting_data": {"progress_rate": rate, "total_tests": row["total_tests"]},
                "recommendation": "Review the topics covered since scores started to fall.",
            })
    return insights


# ── Consistency Insights ────────────────────────────────────────────

def _consistency_insights(
    progress: List[Dict[str, Any]],
    consistency: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    insights: List[Dict[str, Any]] = []
    by_subject = {c["subject"]: c for c in consistency}

    for row in progress:
        subject = row["subject"]
        highest, lowest = row.get("highest"), row.get("lowest")
        c = by_subject.get(subject)

        if c and c["status"] == "Volatile":
            insights.append({
                "id": f"consistency_volatile_{_slug(subject)}",
                "subject": subject,
                "category": "consistency",
                "severity": "warning",
                "title": f"Volatile Scores in {subject}",
                "narrative": narrate_volatile_subject(subject, c["variation"]),
                "supporting_data": {"variation": c["variation"], "count": c["count"]},
                "recommendation": "Focus on steady weekly revision rather than last-minute study.",
            })
        elif highest is not None and lowest is not None and highest - lowest > WIDE_RANGE_POINTS:
            insights.append({
                "id": f"consistency_wide_range_{_slug(subject)}",
                "subject": subject,
                "category": "consistency",
                "severity": "warning",
                "title": f"Wide Score Range in {subject}",
                "narrative": narrate_wide_range(subject, highest, lowest),
                "supporting_data": {"highest": highest, "lowest": lowest},
                "recommendation": "Focus on consistency across tests.",
            })
        elif c and c["status"] == "Very Stable":
            insights.append({
                "id": f"consistency_stable_{_slug(subject)}",
                "subject": subject,
                "category": "positive",
                "severity": "info",
                "title": f"Very Stable Scores in {subject}",
                "narrative": narrate_stable_subject(subject, c["variation"]),
                "supporting_data": {"variation": c["variation"], "count": c["count"]},
                "recommendation": "Results are predictable; keep the same routine.",
            })
    return insights


# ── Main Entry Point ────────────────────────────────────────────────

def generate_subject_insights(
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
    stable_band: float = DEFAULT_STABLE_BAND,
) -> Dict[str, Any]:
    """
    Generate all rule-based subject insights.

    Returns:
        {
            "insights": [...],          # List of insight dicts
            "summary": {                # Counts by category/severity
                "total": int,
                "by_category": {...},
                "by_severity": {...},
            },
            "executive_summary": str,   # Human-readable paragraph
        }
    """
    subjects = list(subjects) if subjects is not None else None
    progress = compute_subject_progress(tests, subjects=subjects, stable_band=stable_band)
    consistency = compute_consistency(tests, subjects=subjects)

    all_insights: List[Dict[str, Any]] = []
    all_insights.extend(_performance_insights(progress))
    all_insights.extend(_trend_insights(progress))
    all_insights.extend(_consistency_insights(progress, consistency))

    # Sort: critical first, then warning, then info
    severity_order = {"critical": 0, "warning": 1, "info": 2}
    all_insights.sort(key=lambda i: severity_order.get(i.get("severity", "info"), 9))

    by_category: Dict[str, int] = {}
    by_severity: Dict[str, int] = {}
    for insight in all_insights:
        cat = insight.get("category", "unknown")
        sev = insight.get("severity", "info")
        by_category[cat] = by_category.get(cat, 0) + 1
        by_severity[sev] = by_severity.get(sev, 0) + 1

    return {
        "insights": all_insights,
        "summary": {
            "total": len(all_insights),
            "by_category": by_category,
            "by_severity": by_severity,
        },
        "executive_summary": generate_executive_summary(all_insights),
    }
