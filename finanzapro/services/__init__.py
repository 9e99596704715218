"""Business logic services for FinanzaPro."""

from .bootstrap import Bootstrapper
from .data_manager import DataManager
from .importer import Importer, ImportSummary
from .sync import DrainResult, PullResult, SyncEngine

__all__ = [
    "Bootstrapper",
    "DataManager",
    "DrainResult",
    "ImportSummary",
    "Importer",
    "PullResult",
    "SyncEngine",
]
