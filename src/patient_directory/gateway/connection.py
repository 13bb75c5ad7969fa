"""MongoDB connection manager for the patient directory's storage gateway.

Holds the single MongoClient (and its pool) that MongoStorageGateway reads
from. Connection attempts are retried with exponential backoff; failures
surface as ``DatabaseConnectionError``.

Example:
    >>> from src.patient_directory.gateway.connection import get_connection_manager
    >>> manager = get_connection_manager()
    >>> manager.connect()
    >>> db = manager.get_database()
    >>> manager.disconnect()
"""

import logging
import threading
import time
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, NetworkTimeout, ServerSelectionTimeoutError

from src.config.settings import Settings, settings

from ..exceptions import ConfigurationError, DatabaseConnectionError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Thread-safe MongoDB connection manager.

    Implements the singleton pattern - use get_connection_manager() to
    retrieve the shared instance.

    Attributes:
        MAX_RETRIES: Maximum number of connection attempts
        RETRY_DELAY: Initial delay in seconds between attempts
        MAX_RETRY_DELAY: Cap on the backoff delay
        HEALTH_CHECK_INTERVAL: Minimum seconds between pings in health_check()
    """

    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0
    MAX_RETRY_DELAY: float = 10.0
    HEALTH_CHECK_INTERVAL: int = 300

    _instance: Optional["ConnectionManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls, config: Settings | None = None) -> "ConnectionManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config: Settings | None = None) -> None:
        """Initialize the connection manager once.

        Args:
            config: Settings to connect with; the module-level settings if omitted

        Raises:
            ConfigurationError: If the shared instance already uses different settings
        """
        if self._initialized:
            if config is not None and config is not self._config and config != self._config:
                raise ConfigurationError(
                    message="ConnectionManager is already configured with different settings",
                    details={
                        "configured_database": self._config.mongodb_database,
                        "requested_database": config.mongodb_database,
                    },
                )
            return

        self._config = config or settings
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None
        self._connected: bool = False
        self._last_health_check: float = 0.0
        self._lock = threading.Lock()
        self._initialized = True

        logger.debug("ConnectionManager initialized")

    def connect(self) -> bool:
        """Connect to MongoDB, retrying with exponential backoff.

        Returns:
            True once connected

        Raises:
            DatabaseConnectionError: If every attempt fails
        """
        with self._lock:
            if self._connected:
                logger.debug("Already connected to MongoDB")
                return True

            config = self._config
            logger.info("Attempting to connect to MongoDB...")

            for attempt in range(self.MAX_RETRIES):
                try:
                    self._client = MongoClient(
                        config.mongodb_connection_string,
                        serverSelectionTimeoutMS=config.mongodb_timeout * 1000,
                        connectTimeoutMS=config.mongodb_timeout * 1000,
                        minPoolSize=config.mongodb_min_pool_size,
                        maxPoolSize=config.mongodb_max_pool_size,
                    )

                    self._client.admin.command("ping")
                    self._database = self._client[config.mongodb_database]
                    self._connected = True
                    self._last_health_check = time.time()

                    logger.info(
                        f"Connected to MongoDB at {config.mongodb_uri} "
                        f"(database: {config.mongodb_database})"
                    )
                    return True

                except (ServerSelectionTimeoutError, ConnectionFailure, NetworkTimeout) as e:
                    if self._client is not None:
                        self._client.close()
                        self._client = None
                    attempt_num = attempt + 1
                    if attempt_num < self.MAX_RETRIES:
                        delay = min(self.RETRY_DELAY * (2**attempt), self.MAX_RETRY_DELAY)
                        logger.warning(
                            f"Connection attempt {attempt_num}/{self.MAX_RETRIES} failed. "
                            f"Retrying in {delay:.1f} seconds... Error: {e}"
                        )
                        time.sleep(delay)
                    else:
                        error_msg = f"Failed to connect to MongoDB after {self.MAX_RETRIES} attempts"
                        logger.error(f"{error_msg}: {e}")
                        raise DatabaseConnectionError(
                            message=error_msg,
                            details={"database": config.mongodb_database},
                            original_exception=e,
                        ) from e

            return False

    def disconnect(self) -> bool:
        """Close the client. Returns False if closing raised."""
        with self._lock:
            if not self._connected or self._client is None:
                logger.debug("Not connected to MongoDB, nothing to disconnect")
                return True

            try:
                self._client.close()
            except Exception as e:
                logger.error(f"Error during MongoDB disconnection: {e}")
                return False
            finally:
                self._connected = False
                self._database = None
                self._client = None

            logger.info("Disconnected from MongoDB")
            return True

    def get_database(self) -> Database:
        """Database handle for the configured database.

        Raises:
            DatabaseConnectionError: If connect() has not succeeded
        """
        if not self._connected or self._database is None:
            raise DatabaseConnectionError(
                message="Not connected to MongoDB. Call connect() first",
                details={"operation": "get_database"},
            )
        return self._database

    def is_connected(self) -> bool:
        return self._connected

    def health_check(self) -> bool:
        """Ping the server, at most once per HEALTH_CHECK_INTERVAL."""
        current_time = time.time()
        if current_time - self._last_health_check < self.HEALTH_CHECK_INTERVAL:
            return self._connected

        if not self._connected or self._client is None:
            return False

        try:
            self._client.admin.command("ping")
        except (ConnectionFailure, NetworkTimeout) as e:
            logger.warning(f"MongoDB health check failed: {e}")
            self._connected = False
            return False

        self._last_health_check = current_time
        logger.debug("MongoDB health check passed")
        return True

    @classmethod
    def reset(cls) -> None:
        """Forget the singleton (tests and reconfiguration)."""
        with cls._lock:
            cls._instance = None


def get_connection_manager(config: Settings | None = None) -> ConnectionManager:
    """Return the shared ConnectionManager, creating it on first use."""
    return ConnectionManager(config)


if __name__ == "__main__":
    # Script: test database connectivity with the current settings
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    manager = get_connection_manager()
    try:
        manager.connect()
        collections = manager.get_database().list_collection_names()
        logger.info(f"Collections: {collections}")
        logger.info("Health check passed" if manager.health_check() else "Health check failed")
    except DatabaseConnectionError as e:
        logger.error(f"Connection test failed: {e}")
        sys.exit(1)
    finally:
        manager.disconnect()
