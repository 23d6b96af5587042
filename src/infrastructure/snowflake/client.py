"""
Snowflake database connection management.

Provides a connection context manager for Snowflake plus an in-memory mock
for local development. Application code goes through VideoRepository and
never touches this module directly.
"""

import base64
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from .repositories.videos import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class VideoStoreConnectionError(Exception):
    """Raised when the Snowflake connection cannot be established."""
    pass


def _load_private_key(pem_bytes: bytes) -> bytes:
    """Convert a PEM private key into the DER/PKCS8 bytes the connector expects."""
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Key-pair auth (base64 or file) takes precedence over password auth.

    Usage:
        with get_snowflake_connection(config) as conn:
            repo = VideoRepository(conn)
    """
    # imported here so mock mode runs without loading the connector
    import snowflake.connector

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
    }

    private_key = _read_private_key(config)
    if private_key is not None:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = private_key
    elif config.password:
        connect_params['password'] = config.password
    else:
        raise VideoStoreConnectionError(
            "Either password or a private key must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise VideoStoreConnectionError(f"Database connection failed: {e}")

    try:
        yield conn
    finally:
        try:
            conn.close()
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock cursor over an in-memory ``videos`` table.

    Understands just the INSERT, SELECT and UPDATE statements that
    VideoRepository issues, matched by keyword.
    """

    def __init__(self, table: dict[str, list]) -> None:
        self._table = table
        self._results: list[tuple] = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        query_upper = " ".join(query.upper().split())
        params = params or ()
        self._results = []
        self._rowcount = 0

        if query_upper.startswith('INSERT INTO VIDEOS'):
            video_id = params[0]
            if video_id in self._table:
                raise ValueError(f"Duplicate video_id {video_id}")
            self._table[video_id] = list(params)
            self._rowcount = 1

        elif query_upper.startswith('SELECT') and 'WHERE VIDEO_ID' in query_upper:
            row = self._table.get(params[0])
            self._results = [tuple(row)] if row else []

        elif query_upper.startswith('SELECT') and 'WHERE USER_ID' in query_upper:
            user_id, limit = params[0], params[1]
            rows = [tuple(r) for r in self._table.values() if r[1] == user_id]
            rows.sort(key=lambda r: r[5], reverse=True)
            self._results = rows[:limit]

        elif query_upper.startswith('UPDATE VIDEOS'):
            title, description, video_url, updated_at, video_id = params
            row = self._table.get(video_id)
            if row:
                row[2], row[3], row[4], row[6] = title, description, video_url, updated_at
                self._rowcount = 1

        else:
            raise ValueError(f"Unsupported mock query: {query_upper[:60]}")

        return self

    def fetchone(self):
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        return self._results

    def close(self) -> None:
        pass

    @property
    def rowcount(self) -> int:
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development and tests.

    Rows live in a dict keyed by video_id and persist for the lifetime of
    the connection object.
    """

    def __init__(self) -> None:
        self._videos: dict[str, list] = {}
        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        return MockSnowflakeCursor(self._videos)

    def commit(self) -> None:
        logger.debug("Mock connection commit")

    def close(self) -> None:
        logger.debug("Mock connection close")
