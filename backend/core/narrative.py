"""
narrative.py — Template-based text generation for subject insights.

Transforms structured progress data into human-readable sentences.
Uses f-string templates — zero AI dependency.
"""

from typing import Any, Dict, List


# ── Level Narratives ────────────────────────────────────────────────

def narrate_excellent_subject(subject: str, average: float, total_tests: int) -> str:
    return (
        f"Excellent performance in {subject}: an average of {average:.1f}% "
        f"across {total_tests} test{'s' if total_tests != 1 else ''}. Keep up the great work."
    )


def narrate_good_subject(subject: str, average: float) -> str:
    return (
        f"Good performance in {subject} with an average of {average:.1f}%. "
        f"There is room for improvement towards the 80% mark."
    )


def narrate_weak_subject(subject: str, average: float) -> str:
    return (
        f"{subject} needs more attention: the average is {average:.1f}%. "
        f"Consider additional practice on recent topics."
    )


# ── Trend Narratives ────────────────────────────────────────────────

def narrate_improving_trend(subject: str, rate: float) -> str:
    return (
        f"Scores in {subject} are improving over time, rising by about "
        f"{rate:.2f} points per test. Keep up the momentum."
    )


def narrate_declining_trend(subject: str, rate: float) -> str:
    return (
        f"Recent performance in {subject} has declined, falling by about "
        f"{abs(rate):.2f} points per test. Consider reviewing recent topics."
    )


# ── Variability Narratives ──────────────────────────────────────────

def narrate_wide_range(subject: str, highest: float, lowest: float) -> str:
    return (
        f"Performance in {subject} varies significantly, from {lowest:.1f}% "
        f"to {highest:.1f}%. Focus on consistency."
    )


def narrate_volatile_subject(subject: str, variation: float) -> str:
    return (
        f"{subject} scores are volatile (standard deviation {variation:.1f} points). "
        f"Results swing widely from test to test."
    )


def narrate_stable_subject(subject: str, variation: float) -> str:
    return (
        f"{subject} scores are very stable (standard deviation {variation:.1f} points)."
    )


# ── Executive Summary ───────────────────────────────────────────────

def generate_executive_summary(insights: List[Dict[str, Any]]) -> str:
    """One short paragraph summarising the insight list."""
    if not insights:
        return "No test data is available yet. Start adding marks to see subject insights."

    critical = [i for i in insights if i.get("severity") == "critical"]
    warnings = [i for i in insights if i.get("severity") == "warning"]
    positives = [i for i in insights if i.get("category") == "positive"]

    parts = [f"{len(insights)} insight{'s' if len(insights) != 1 else ''} generated."]
    if critical:
        subjects = ", ".join(sorted({str(i.get("subject")) for i in critical}))
        parts.append(f"Needs attention: {subjects}.")
    if warnings:
        parts.append(f"{len(warnings)} warning{'s' if len(warnings) != 1 else ''} to review.")
    if positives:
        subjects = ", ".join(sorted({str(i.get("subject")) for i in positives}))
        parts.append(f"Strengths: {subjects}.")
    return " ".join(parts)
