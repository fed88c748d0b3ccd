"""Local development proxy that injects built assets and expands includes."""

__version__ = "0.3.0"
