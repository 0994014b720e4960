"""
report_builder.py — PDF and Excel report generation.

Generates:
- Progress Report PDF (summary, monthly trend chart, subject progress,
  consistency, insights)
- Excel Export        (marks history, weekly/monthly/annual rollups,
  consistency; conditional formatting)

PDFs are A4, print-ready with class name / date footer.
"""

import io
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from xml.sax.saxutils import escape

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import (
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.records import parse_records
from core.stats import compute_stats
from core.trends import DEFAULT_STABLE_BAND, compute_consistency, compute_subject_progress
from core.insights import generate_subject_insights


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK  = colors.HexColor("#1a1a2e")
BRAND_ACCENT = colors.HexColor("#0f3460")
LIGHT_GREY  = colors.HexColor("#f5f5f5")
WHITE       = colors.white

MPL_PALETTE = ["#0f3460", "#e94560", "#2ecc71", "#f39c12", "#9b59b6", "#1abc9c"]

GOOD_SCORE = 80
FAIR_SCORE = 60


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val):
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _fmt_pct(val) -> str:
    v = _safe_float(val)
    return "—" if v is None else f"{v:.1f}%"


def _footer(canvas, doc, class_name: str):
    """Draw class name and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    footer_text = f"{class_name} — Generated {datetime.now().strftime('%d %B %Y, %H:%M')}"
    canvas.drawString(2 * cm, 1.2 * cm, footer_text)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _chart_to_image(fig, width=14 * cm, height=8 * cm) -> Image:
    """Convert a matplotlib figure to a ReportLab Image."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return Image(buf, width=width, height=height)


def _history_frame(records: List[Dict[str, Any]], subjects: List[str]) -> pd.DataFrame:
    """One row per test with a percentage column per subject."""
    rows = []
    for r in sorted(records, key=lambda r: (r["date"], r["index"])):
        row: Dict[str, Any] = {
            "date": r["date"].isoformat(),
            "week": r["keys"]["week"],
            "month": r["keys"]["month"],
        }
        for subject in subjects:
            pct = r["scores"].get(subject)
            row[subject] = round(pct, 2) if pct is not None else None
        scores = list(r["scores"].values())
        row["overall"] = round(sum(scores) / len(scores), 2) if scores else None
        rows.append(row)
    return pd.DataFrame(rows, columns=["date", "week", "month", *subjects, "overall"])


def _period_frame(periods: Optional[List[Dict[str, Any]]], subjects: List[str], label: str) -> pd.DataFrame:
    rows = []
    for p in periods or []:
        per_subject = p["stats"]["per_subject"]
        row = {label: p["period_key"], "tests": p.get("test_count")}
        for subject in subjects:
            row[subject] = per_subject.get(subject)
        row["overall"] = p["stats"]["overall"]
        rows.append(row)
    return pd.DataFrame(rows, columns=[label, "tests", *subjects, "overall"])


def _subject_order(records: List[Dict[str, Any]], subjects: Optional[List[str]]) -> List[str]:
    if subjects is not None:
        return subjects
    seen: Dict[str, None] = {}
    for r in records:
        for s in r["scores"]:
            seen.setdefault(s, None)
    return list(seen)


# ── Charts ──────────────────────────────────────────────────────────

def _monthly_trend_chart(monthly: Optional[List[Dict[str, Any]]]) -> Optional[Image]:
    """Line chart of the overall monthly average, oldest month first."""
    points = [
        (m["period_key"], m["stats"]["overall"])
        for m in reversed(monthly or [])
        if m["stats"]["overall"] is not None
    ]
    if not points:
        return None

    labels = [p[0] for p in points]
    means = [p[1] for p in points]

    fig, ax = plt.subplots(figsize=(7, 3.5))
    ax.plot(labels, means, marker="o", color=MPL_PALETTE[0], linewidth=2, markersize=7)
    ax.fill_between(range(len(labels)), means, alpha=0.15, color=MPL_PALETTE[0])
    for i, m in enumerate(means):
        ax.annotate(f"{m:.1f}", (i, m), textcoords="offset points",
                    xytext=(0, 10), ha="center", fontsize=8, fontweight="bold")
    ax.set_ylabel("Average Score (%)", fontsize=10)
    ax.set_title("Monthly Average", fontsize=12, fontweight="bold", pad=12)
    ax.set_ylim(0, 105)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(axis="x", rotation=30)
    fig.tight_layout()
    return _chart_to_image(fig, width=14 * cm, height=7 * cm)


# ── PDF Helpers ─────────────────────────────────────────────────────

def _styles():
    """Return custom paragraph styles."""
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=24, leading=30, textColor=BRAND_DARK,
            spaceAfter=6 * mm,
        ),
        "subtitle": ParagraphStyle(
            "CustomSubtitle", parent=ss["Normal"],
            fontSize=14, leading=18, textColor=BRAND_ACCENT,
            spaceAfter=4 * mm,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=14, leading=18, textColor=BRAND_DARK,
            spaceBefore=8 * mm, spaceAfter=4 * mm,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=10, leading=14, textColor=colors.black,
            spaceAfter=3 * mm,
        ),
        "small": ParagraphStyle(
            "CustomSmall", parent=ss["Normal"],
            fontSize=8, leading=10, textColor=colors.grey,
        ),
        "center": ParagraphStyle(
            "CenterBody", parent=ss["Normal"],
            fontSize=10, leading=14, alignment=TA_CENTER,
        ),
    }


def _make_table(data: List[List], col_widths=None, header_color=BRAND_DARK):
    """Create a styled table."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), header_color),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT_GREY]),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


def _color_coded_table(data: List[List], score_col_idx: int, col_widths=None):
    """Table with per-row colour coding based on a score column."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND_DARK),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]

    for row_idx in range(1, len(data)):
        score = _safe_float(str(data[row_idx][score_col_idx]).rstrip("%"))
        if score is None:
            continue
        if score >= GOOD_SCORE:
            bg = colors.HexColor("#d5f5e3")
        elif score >= FAIR_SCORE:
            bg = colors.HexColor("#fef9e7")
        else:
            bg = colors.HexColor("#fadbd8")
        style_cmds.append(("BACKGROUND", (0, row_idx), (-1, row_idx), bg))

    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


# ═══════════════════════════════════════════════════════════════════
# 1. PROGRESS REPORT PDF
# ═══════════════════════════════════════════════════════════════════

def generate_progress_report_pdf(
    output_path: str,
    class_name: str,
    tests: Optional[List[Any]],
    subjects: Optional[Iterable[str]] = None,
    student_name: Optional[str] = None,
    stable_band: float = DEFAULT_STABLE_BAND,
):
    """Generate a progress report PDF for one student's (or class's) tests."""
    subjects = list(subjects) if subjects is not None else None
    st = _styles()
    story = []

    stats = compute_stats(tests, subjects=subjects)
    progress = compute_subject_progress(tests, subjects=subjects, stable_band=stable_band)
    consistency = compute_consistency(tests, subjects=subjects)
    insights = generate_subject_insights(tests, subjects=subjects, stable_band=stable_band)

    story.append(Paragraph(escape(class_name), st["title"]))
    story.append(Paragraph(
        f"Progress Report — {escape(str(student_name))}" if student_name else "Progress Report",
        st["subtitle"],
    ))
    story.append(Paragraph(datetime.now().strftime("%d %B %Y"), st["small"]))
    story.append(Spacer(1, 4 * mm))

    if stats["overall"] is None:
        story.append(Paragraph("No marks available yet.", st["body"]))
        doc = SimpleDocTemplate(output_path, pagesize=A4)
        doc.build(story)
        return

    # ── Summary ─────────────────────────────────────────────────────
    scored = [p for p in progress if p["average_score"] is not None]
    best = max(scored, key=lambda p: p["average_score"]) if scored else None
    weakest = min(scored, key=lambda p: p["average_score"]) if scored else None
    summary = [
        ["Overall Average", _fmt_pct(stats["overall"]["overall"])],
        ["Tests Recorded", str(sum(a["test_count"] for a in stats["annual"]))],
        ["Best Subject", f"{best['subject']} ({best['average_score']:.1f}%)" if best else "N/A"],
        ["Needs More Support", f"{weakest['subject']} ({weakest['average_score']:.1f}%)" if weakest else "N/A"],
    ]
    summary_table = Table(summary, colWidths=[6.5 * cm, 8.5 * cm])
    summary_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#eef2ff")),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ]))
    story.append(summary_table)
    story.append(Paragraph(escape(insights["executive_summary"]), st["body"]))

    # ── Trend ───────────────────────────────────────────────────────
    story.append(Paragraph("Progress Over Time", st["heading"]))
    chart = _monthly_trend_chart(stats["monthly"])
    if chart:
        story.append(chart)
    else:
        story.append(Paragraph("No monthly trend data available yet.", st["body"]))

    # ── Subject Progress ────────────────────────────────────────────
    story.append(Paragraph("Subject Progress", st["heading"]))
    rows = [["Subject", "Average", "Highest", "Lowest", "Tests", "Rate / test", "Trend"]]
    for p in progress:
        rate = p["progress_rate"]
        rows.append([
            p["label"],
            _fmt_pct(p["average_score"]),
            _fmt_pct(p["highest"]),
            _fmt_pct(p["lowest"]),
            str(p["total_tests"]),
            "—" if rate is None else f"{rate:+.2f}",
            p["trend"].replace("_", " ").title(),
        ])
    story.append(_color_coded_table(
        rows, score_col_idx=1,
        col_widths=[3.4 * cm, 2 * cm, 2 * cm, 2 * cm, 1.4 * cm, 2.2 * cm, 3 * cm],
    ))

    # ── Consistency ─────────────────────────────────────────────────
    story.append(Paragraph("Consistency", st["heading"]))
    c_rows = [["Subject", "Variation (SD)", "Status", "Tests"]]
    for c in consistency:
        c_rows.append([c["label"], f"{c['variation']:.1f}", c["status"], str(c["count"])])
    story.append(_make_table(c_rows, col_widths=[5 * cm, 3.5 * cm, 4 * cm, 2.5 * cm]))

    # ── Insights ────────────────────────────────────────────────────
    story.append(Paragraph("Insights", st["heading"]))
    if insights["insights"]:
        for i, insight in enumerate(insights["insights"], 1):
            story.append(Paragraph(f"{i}. <b>{escape(insight['title'])}</b> — {escape(insight['narrative'])}", st["body"]))
    else:
        story.append(Paragraph("No insights available yet.", st["body"]))

    doc = SimpleDocTemplate(
        output_path, pagesize=A4,
        leftMargin=2 * cm, rightMargin=2 * cm,
        topMargin=2 * cm, bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, class_name),
        onLaterPages=lambda c, d: _footer(c, d, class_name),
    )


# ═══════════════════════════════════════════════════════════════════
# 2. EXCEL EXPORT
# ═══════════════════════════════════════════════════════════════════

def generate_excel_export(
    output_path: str,
    tests: Optional[List[Any]],
    class_name: str,
    subjects: Optional[Iterable[str]] = None,
):
    """Export marks history and period rollups to Excel with conditional formatting."""
    subjects = list(subjects) if subjects is not None else None
    records, _ = parse_records(tests, subjects=subjects)
    subject_cols = _subject_order(records, subjects)
    stats = compute_stats(tests, subjects=subjects)
    consistency = compute_consistency(tests, subjects=subjects)

    sheets = [
        ("Marks History", "1a1a2e", _history_frame(records, subject_cols)),
        ("Weekly", "0f3460", _period_frame(stats["weekly"], subject_cols, "week")),
        ("Monthly", "e94560", _period_frame(stats["monthly"], subject_cols, "month")),
        ("Annual", "2ecc71", _period_frame(stats["annual"], subject_cols, "year")),
        ("Consistency", "f39c12", pd.DataFrame(
            consistency, columns=["subject", "label", "variation", "status", "color", "count"],
        ).drop(columns=["color"])),
    ]

    # Styling definitions
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    red_fill = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
    green_fill = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
    yellow_fill = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws, dataframe):
        """Apply formatting to a worksheet."""
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        overall_idx = None
        for idx, col_name in enumerate(dataframe.columns, 1):
            if col_name == "overall":
                overall_idx = idx
                break

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="center")

            if overall_idx and row[overall_idx - 1].value is not None:
                val = _safe_float(row[overall_idx - 1].value)
                if val is None:
                    continue
                fill = green_fill if val >= GOOD_SCORE else (yellow_fill if val >= FAIR_SCORE else red_fill)
                for cell in row:
                    cell.fill = fill

        ws.freeze_panes = "A2"

        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb = Workbook()
    wb.remove(wb.active)
    for title, tab_color, frame in sheets:
        ws = wb.create_sheet(title=title)
        ws.sheet_properties.tabColor = tab_color
        # Empty cells instead of NaN
        frame = frame.astype(object).where(frame.notna(), None)
        for row in dataframe_to_rows(frame, index=False, header=True):
            ws.append(row)
        _style_sheet(ws, frame)

    wb.properties.title = f"{class_name} — Marks Export"
    wb.save(output_path)
