"""Enrollment, recognition and model lifecycle services."""
