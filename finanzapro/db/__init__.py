"""Local SQLite mirror."""

from .database import Database

__all__ = ["Database"]
