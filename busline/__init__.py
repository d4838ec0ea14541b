"""Segment-based seat booking for multi-stop bus routes."""

__version__ = "1.0.0"
