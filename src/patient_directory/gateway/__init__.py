"""Storage gateways: the abstract contract and its MongoDB implementation."""

from .base import StorageGateway
from .connection import ConnectionManager, get_connection_manager
from .mongo_gateway import MongoStorageGateway

__all__ = [
    "ConnectionManager",
    "MongoStorageGateway",
    "StorageGateway",
    "get_connection_manager",
]
