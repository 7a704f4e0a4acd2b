"""Apple Notes export to Markdown."""

__version__ = "0.1.0"
