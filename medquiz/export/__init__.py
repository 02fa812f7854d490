"""Export functionality for quiz reports."""

from .docx_report import export_quiz_report

__all__ = ["export_quiz_report"]
