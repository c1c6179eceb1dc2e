"""
Database connection utilities with retry logic and connection pooling
Driver errors leave this module as NodeConnectionError
"""
import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool
import threading
import time
from typing import Optional
import logging

from db_config import CONNECT_RETRIES, CONNECT_RETRY_DELAY_SECONDS, DatabaseConfig
from status_errors import NodeConnectionError

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages database connections with pooling and retry logic"""

    def __init__(
        self,
        config: DatabaseConfig,
        pool_size: int = 2,
        max_retries: int = CONNECT_RETRIES,
        retry_delay: float = CONNECT_RETRY_DELAY_SECONDS
    ):
        """
        Initialize database connection manager

        Args:
            config: DatabaseConfig instance
            pool_size: Maximum number of connections in pool
            max_retries: Maximum number of connection attempts per pool initialization
            retry_delay: Seconds to wait between retries
        """
        self.config = config
        self.pool: Optional[ThreadedConnectionPool] = None
        self.pool_size = pool_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._in_use = set()
        self._lock = threading.RLock()
        self._cancelled = threading.Event()

    @property
    def address(self) -> str:
        return self.config.address

    def initialize_pool(self):
        """
        Initialize connection pool with retry logic

        Raises:
            NodeConnectionError: once all attempts have failed
        """
        for attempt in range(self.max_retries):
            try:
                self.pool = ThreadedConnectionPool(1, self.pool_size, **self.config.connect_kwargs())
                logger.info(f"Connection pool initialized for {self.address}")
                return
            except psycopg2.OperationalError as e:
                if attempt < self.max_retries - 1 and not self._cancelled.is_set():
                    logger.warning(
                        f"Connection attempt {attempt + 1}/{self.max_retries} to {self.address} failed, "
                        f"retrying in {self.retry_delay}s... Error: {e}"
                    )
                    self._cancelled.wait(self.retry_delay)
                else:
                    logger.error(f"Failed to connect to {self.address} after {attempt + 1} attempts")
                    raise NodeConnectionError(
                        str(e).strip() or "connection failed", node=self.address, operation="connect"
                    ) from e

    def get_connection(self):
        """Get a connection from the pool"""
        if not self.pool:
            self.initialize_pool()
        try:
            conn = self.pool.getconn()
        except psycopg2.Error as e:
            # The pool reconnects lazily once a dropped connection was discarded
            logger.error(f"Could not get a connection to {self.address}: {e}")
            raise NodeConnectionError(
                str(e).strip() or type(e).__name__, node=self.address, operation="connect"
            ) from e
        with self._lock:
            self._in_use.add(conn)
        return conn

    def return_connection(self, conn):
        """Return connection to pool, discarding it if the server dropped it"""
        with self._lock:
            self._in_use.discard(conn)
        if self.pool:
            self.pool.putconn(conn, close=bool(conn.closed))

    def server_version(self) -> int:
        """Server version as an integer, e.g. 90624 or 150004"""
        conn = self.get_connection()
        try:
            return conn.server_version
        finally:
            self.return_connection(conn)

    def execute_query(
        self,
        query: str,
        params: Optional[tuple] = None,
        operation: str = "query"
    ) -> list:
        """
        Execute a read-only query with automatic connection management

        Args:
            query: SQL query to execute
            params: Query parameters
            operation: Label for error reports

        Returns:
            List of results (as dicts)

        Raises:
            NodeConnectionError: on any driver error
        """
        conn = None
        try:
            conn = self.get_connection()
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
            conn.rollback()
            return rows
        except psycopg2.Error as e:
            if conn and not conn.closed:
                conn.rollback()
            logger.error(f"Query execution on {self.address} failed: {e}")
            raise NodeConnectionError(
                str(e).strip() or type(e).__name__, node=self.address, operation=operation
            ) from e
        finally:
            if conn:
                self.return_connection(conn)

    def cancel(self):
        """Cancel in-flight queries and stop pending connection retries"""
        self._cancelled.set()
        with self._lock:
            active = list(self._in_use)
        for conn in active:
            try:
                conn.cancel()
            except psycopg2.Error as e:
                logger.warning(f"Could not cancel query on {self.address}: {e}")

    def close_pool(self):
        """Close all connections in pool"""
        if self.pool:
            self.pool.closeall()
            self.pool = None
            logger.info(f"Connection pool for {self.address} closed")
