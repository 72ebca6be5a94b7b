"""Insieme - AI-generated learning worksheets with partial-credit grading."""

__version__ = "2.0.0"
