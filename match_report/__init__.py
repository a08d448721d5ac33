"""Pre-match football report generation."""

__version__ = "1.0.0"
