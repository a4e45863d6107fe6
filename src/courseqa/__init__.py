"""courseqa: quality assurance scanning and auto-fix for e-learning packages."""

__version__ = "0.1.0"
