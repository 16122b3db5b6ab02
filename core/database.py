"""Postgres connection pool used by the SQL-backed conversation store"""
import logging
import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
from typing import Optional, Dict, List, Any, Callable

from config import settings

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


class Database:
    """Threaded connection pool with stale-connection recovery and retrying statements"""

    def __init__(self, connection_params: Optional[Dict[str, Any]] = None,
                 minconn: int = 1, maxconn: int = 10):
        self.connection_params = connection_params or self._connection_params_from_settings()
        self.minconn = minconn
        self.maxconn = maxconn
        self.connection_pool = None
        self._initialize_pool()

    @staticmethod
    def _connection_params_from_settings() -> dict:
        return {
            'dbname': settings.DB_NAME,
            'user': settings.DB_USER,
            'password': settings.DB_PASS,
            'host': settings.DB_HOST,
            'port': settings.DB_PORT,
            'cursor_factory': RealDictCursor,
            'connect_timeout': 10,
            'options': '-c statement_timeout=30000'
        }

    def _initialize_pool(self):
        try:
            self.connection_pool = pool.ThreadedConnectionPool(
                minconn=self.minconn,
                maxconn=self.maxconn,
                **self.connection_params
            )
            logger.info(f"🗄️ Postgres pool ready for {self.connection_params.get('dbname')} "
                        f"(min={self.minconn}, max={self.maxconn})")
        except psycopg2.Error as e:
            logger.error(f"Failed to initialize connection pool: {str(e)}")
            raise

    @staticmethod
    def _is_connection_alive(conn) -> bool:
        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
            return True
        except RETRYABLE_ERRORS:
            return False

    @contextmanager
    def get_connection(self):
        """Borrow a connection; commit on success, roll back on error.

        Connections the server dropped are replaced before use, and any
        connection that fails at the transport level is closed instead of
        being returned to the pool.
        """
        conn = None
        discard = False
        try:
            conn = self.connection_pool.getconn()
            if not self._is_connection_alive(conn):
                logger.warning("Stale connection from pool, replacing it")
                self.connection_pool.putconn(conn, close=True)
                conn = self.connection_pool.getconn()

            yield conn
            conn.commit()
        except pool.PoolError as e:
            logger.error(f"Connection pool exhausted: {str(e)}")
            raise
        except RETRYABLE_ERRORS as e:
            discard = True
            logger.error(f"Connection error, discarding connection: {str(e)}")
            raise
        except Exception as e:
            if conn:
                try:
                    conn.rollback()
                except psycopg2.Error:
                    discard = True
            logger.error(f"Database error: {str(e)}")
            raise
        finally:
            if conn:
                self.connection_pool.putconn(conn, close=discard)

    def _run(self, label: str, query: str, params: Optional[tuple],
             collect: Callable[[Any], Any], max_retries: int):
        """Run one statement, retrying transport failures with a fresh connection"""
        attempts = max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                with self.get_connection() as conn:
                    with conn.cursor() as cursor:
                        cursor.execute(query, params)
                        return collect(cursor)
            except RETRYABLE_ERRORS as e:
                if attempt == attempts:
                    raise
                logger.warning(f"{label} failed (attempt {attempt}/{attempts}), retrying: {str(e)}")

    def execute_query(self, query: str, params: Optional[tuple] = None,
                      max_retries: int = 2) -> List[Dict[str, Any]]:
        """SELECT, returning all rows as dicts"""
        return self._run("Query", query, params, lambda cursor: cursor.fetchall(), max_retries)

    def execute_update(self, query: str, params: Optional[tuple] = None, max_retries: int = 2) -> int:
        """INSERT/UPDATE/DELETE/DDL, returning the affected row count"""
        return self._run("Update", query, params, lambda cursor: cursor.rowcount, max_retries)

    def execute_insert_returning(self, query: str, params: Optional[tuple] = None,
                                 max_retries: int = 2) -> Optional[Dict[str, Any]]:
        """Statement with a RETURNING clause, returning the first row or None"""
        return self._run("Insert", query, params, lambda cursor: cursor.fetchone(), max_retries)

    def close_all_connections(self):
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("All database connections closed")


_db: Optional[Database] = None


def get_db() -> Database:
    """Shared pool, created on first use"""
    global _db
    if _db is None:
        _db = Database()
    return _db


def close_db():
    """Close the shared pool if it was ever opened"""
    global _db
    if _db is not None:
        _db.close_all_connections()
        _db = None
