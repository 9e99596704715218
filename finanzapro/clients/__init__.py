"""Remote backend clients for FinanzaPro."""

from .mock_client import MockRemoteClient
from .protocols import RemoteClientProtocol
from .rest_client import RestRemoteClient

__all__ = [
    "MockRemoteClient",
    "RemoteClientProtocol",
    "RestRemoteClient",
]
