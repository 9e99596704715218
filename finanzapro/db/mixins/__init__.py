"""Database mixins composed by Database."""

from .base import DatabaseMixin
from .queue import PendingOperationsMixin
from .records import RecordsMixin
from .stats import StatsMixin, month_range

__all__ = [
    "DatabaseMixin",
    "PendingOperationsMixin",
    "RecordsMixin",
    "StatsMixin",
    "month_range",
]
