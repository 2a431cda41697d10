"""Version information for signoff."""

__version__ = "0.1.0"
