"""Verification report generation in HTML.

Uses Jinja2 templates to render connectivity matrices and capture
counters from a verification run.
"""

from .report_generator import CheckRecord, ReportData, ReportGenerator

__all__ = ["CheckRecord", "ReportData", "ReportGenerator"]
