"""Studly: lecture recordings to exam-ready study notes."""

__version__ = "1.0.0"
