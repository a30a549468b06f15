"""Watch GitHub for pull requests awaiting your review."""

__version__ = "0.1.0"
