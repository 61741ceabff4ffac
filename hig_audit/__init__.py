"""Rule-based UI source audit engine."""

__version__ = "0.4.0"
