"""
Tests for core/report_builder.py — PDF/Excel generation completes without errors.
"""

import os
import sys

import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import core.report_builder as rb
from core.report_builder import generate_excel_export, generate_progress_report_pdf

CLASS_NAME = "Test Class 7B"


class TestProgressReportPdf:

    def test_generates_pdf(self, tmp_path, sample_tests, subjects):
        path = tmp_path / "progress.pdf"
        generate_progress_report_pdf(
            output_path=str(path),
            class_name=CLASS_NAME,
            tests=sample_tests,
            subjects=subjects,
            student_name="Asha",
        )
        assert path.exists()
        assert path.read_bytes()[:5] == b"%PDF-"

    def test_empty_tests(self, tmp_path):
        path = tmp_path / "empty.pdf"
        generate_progress_report_pdf(str(path), CLASS_NAME, [])
        assert path.read_bytes()[:5] == b"%PDF-"

    def test_markup_characters_in_names(self, tmp_path):
        tests = [
            {"date": "2024-01-08", "marks": {"Maths <b": 40}},
            {"date": "2024-01-15", "marks": {"Maths <b": 95}},
        ]
        path = tmp_path / "markup.pdf"
        generate_progress_report_pdf(
            str(path), "7B <Science & Arts>", tests,
            subjects=["Maths <b"], student_name="A<B",
        )
        assert path.read_bytes()[:5] == b"%PDF-"

    @pytest.mark.parametrize("stable_band,trend", [(0.5, "improving"), (3.0, "stable")])
    def test_stable_band_used_for_trends(self, tmp_path, monkeypatch, stable_band, trend):
        seen = {}
        original_progress = rb.compute_subject_progress
        original_insights = rb.generate_subject_insights

        def progress(*args, **kwargs):
            rows = original_progress(*args, **kwargs)
            seen["trends"] = [r["trend"] for r in rows]
            return rows

        def insights(*args, **kwargs):
            result = original_insights(*args, **kwargs)
            seen["ids"] = {i["id"] for i in result["insights"]}
            return result

        monkeypatch.setattr(rb, "compute_subject_progress", progress)
        monkeypatch.setattr(rb, "generate_subject_insights", insights)

        # Progress rate 2.0 points per test
        tests = [
            {"date": "2024-01-08", "marks": {"Maths": 60}},
            {"date": "2024-01-15", "marks": {"Maths": 62}},
        ]
        generate_progress_report_pdf(
            str(tmp_path / "band.pdf"), CLASS_NAME, tests,
            subjects=["Maths"], stable_band=stable_band,
        )
        assert seen["trends"] == [trend]
        assert ("trend_improving_maths" in seen["ids"]) == (trend == "improving")


class TestExcelExport:

    @pytest.fixture
    def workbook(self, tmp_path, sample_tests, subjects):
        path = tmp_path / "export.xlsx"
        generate_excel_export(
            output_path=str(path),
            tests=sample_tests,
            class_name=CLASS_NAME,
            subjects=subjects,
        )
        return load_workbook(str(path))

    def test_sheets(self, workbook):
        assert workbook.sheetnames == ["Marks History", "Weekly", "Monthly", "Annual", "Consistency"]

    def test_history_rows(self, workbook):
        ws = workbook["Marks History"]
        header = [c.value for c in ws[1]]
        assert header == ["date", "week", "month", "English", "Hindi", "Maths", "Science", "overall"]
        # Six valid tests, oldest first
        assert ws.max_row == 7
        assert ws["A2"].value == "2024-02-05"

    def test_monthly_values(self, workbook):
        ws = workbook["Monthly"]
        rows = list(ws.iter_rows(min_row=2, values_only=True))
        assert rows[0][0] == "2024-03"
        assert rows[0][-1] == 72.0

    def test_empty_subject_cells_blank(self, workbook):
        ws = workbook["Monthly"]
        hindi_col = [c.value for c in ws[1]].index("Hindi") + 1
        assert ws.cell(row=2, column=hindi_col).value is None

    def test_empty_tests(self, tmp_path):
        path = tmp_path / "empty.xlsx"
        generate_excel_export(str(path), [], CLASS_NAME)
        wb = load_workbook(str(path))
        assert wb["Weekly"].max_row == 1
