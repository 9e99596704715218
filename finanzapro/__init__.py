"""FinanzaPro - offline-first personal finance tracker core."""

__version__ = "0.1.0"
