"""Terminal client for a messaging gateway."""

__version__ = "0.3.0"
