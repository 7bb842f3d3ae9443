"""
Simple MongoDB client manager that creates and tracks clients.
"""

import threading

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient

from ..config import config


class MongoManager:
    """
    Simple MongoDB client manager.

    Features:
    - Creates and tracks one MongoDB client per label
    - Loads connection strings from MONGO_URL_<LABEL> configuration keys
    - Configurable connection pool size and server selection timeout
    - Thread-safe singleton pattern
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return

        self._clients: dict[str, AsyncIOMotorClient] = {}
        self._connection_strings: dict[str, str] = {}
        self._max_pool_size = config.get_mongo_max_pool_size()
        self._server_selection_timeout = config.get_mongo_server_selection_timeout()
        self._clients_lock = threading.Lock()

        self._load_connection_strings()
        self._initialized = True

    def _load_connection_strings(self):
        for key, value in config.items():
            if not key.startswith("MONGO_URL_") or not value:
                continue
            label = key[len("MONGO_URL_"):].lower()
            self._connection_strings[label] = value
            logger.info(
                "Loaded MongoDB connection string for label '{}': {}",
                label,
                self._hide_password_in_connection_string(value),
            )

        if "default" not in self._connection_strings:
            self._connection_strings["default"] = config.get_mongo_url("default")

    def _hide_password_in_connection_string(self, connection_string: str) -> str:
        if "://" not in connection_string or "@" not in connection_string:
            return connection_string

        protocol_part, rest = connection_string.split("://", 1)
        auth_part, host_part = rest.rsplit("@", 1)
        if ":" not in auth_part:
            return connection_string

        username, _ = auth_part.split(":", 1)
        return f"{protocol_part}://{username}:***@{host_part}"

    def get_client(self, label: str | None = None) -> AsyncIOMotorClient:
        """
        Get MongoDB client by label.

        Raises:
            ValueError: If no connection string is configured for the label
        """
        label = label or "default"

        with self._clients_lock:
            if label not in self._clients:
                connection_string = self._connection_strings.get(label)
                if not connection_string:
                    raise ValueError(f"No MongoDB connection string found for label '{label}'")

                logger.info("Open MongoDB client for label '{}'", label)
                self._clients[label] = AsyncIOMotorClient(
                    connection_string,
                    serverSelectionTimeoutMS=self._server_selection_timeout,
                    maxPoolSize=self._max_pool_size,
                    tz_aware=True,
                )

            return self._clients[label]

    def close_all(self):
        with self._clients_lock:
            for label, client in self._clients.items():
                client.close()
                logger.info("Free mongo client for '{}'", label)
            self._clients.clear()


_mongo_manager: MongoManager | None = None


def get_mongo_manager() -> MongoManager:
    """Get the global MongoDB manager instance."""
    global _mongo_manager
    if _mongo_manager is None:
        _mongo_manager = MongoManager()
    return _mongo_manager


def get_mongo_client(label: str | None = None) -> AsyncIOMotorClient:
    """Get MongoDB client by label."""
    return get_mongo_manager().get_client(label)
