"""GitHub profile analytics: API access layer and derived statistics."""

__version__ = "0.1.0"
