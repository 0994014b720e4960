"""
Report routes — PDF and Excel report generation endpoints.
"""

import logging
import os
import re
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.report_builder import generate_excel_export, generate_progress_report_pdf
from routes.analyze import TREND_STABLE_BAND, _subjects_from_payload, _tests_from_payload

logger = logging.getLogger(__name__)

router = APIRouter()

CLASS_NAME = os.getenv("CLASS_NAME", "My Class")
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _resolve_class_name(payload: dict) -> str:
    """Prefer the class name sent with the request; fallback to env config."""
    name = str(payload.get("class_name") or "").strip()
    return name or CLASS_NAME


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    """Best-effort file deletion after response is sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(f"Could not remove report file {path}: {exc}")


@router.post("/progress-pdf")
async def progress_report_pdf(payload: dict):
    """Generate a subject progress report PDF."""
    tests = _tests_from_payload(payload)
    subjects = _subjects_from_payload(payload)
    class_name = _resolve_class_name(payload)
    student_name = payload.get("student_name")

    report_id = str(uuid.uuid4())[:8]
    class_token = _safe_token(class_name, fallback="class")
    output_path = REPORTS_DIR / f"progress_report_{class_token}_{report_id}.pdf"

    try:
        generate_progress_report_pdf(
            output_path=str(output_path),
            class_name=class_name,
            tests=tests,
            subjects=subjects,
            student_name=student_name,
            stable_band=TREND_STABLE_BAND,
        )
    except Exception as exc:
        logger.exception(f"Progress report generation failed for {class_name}")
        _safe_unlink(str(output_path))
        raise HTTPException(500, "Could not generate the progress report.") from exc

    return FileResponse(
        str(output_path),
        media_type="application/pdf",
        filename=f"Progress_Report_{class_token}_{report_id}.pdf",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.post("/excel")
async def excel_export(payload: dict):
    """Export marks history and period averages as an Excel workbook."""
    tests = _tests_from_payload(payload)
    subjects = _subjects_from_payload(payload)
    class_name = _resolve_class_name(payload)

    report_id = str(uuid.uuid4())[:8]
    class_token = _safe_token(class_name, fallback="class")
    output_path = REPORTS_DIR / f"marks_export_{class_token}_{report_id}.xlsx"

    try:
        generate_excel_export(
            output_path=str(output_path),
            tests=tests,
            class_name=class_name,
            subjects=subjects,
        )
    except Exception as exc:
        logger.exception(f"Excel export failed for {class_name}")
        _safe_unlink(str(output_path))
        raise HTTPException(500, "Could not generate the Excel export.") from exc

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Marks_Export_{class_token}_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
