"""Operation-based editing engine for study materials."""

__version__ = "0.1.0"
