"""Command line interface for FinanzaPro."""

from .main import main

__all__ = ["main"]
