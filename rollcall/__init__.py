"""Attendance face enrollment and recognition engine."""

__version__ = "0.1.0"
