"""PostgreSQL database abstraction layer with async connection pooling."""

from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from citus_control.config import DatabaseConfig

logger = structlog.get_logger(__name__)


class Database:
    """Manages async PostgreSQL connections for the Cluster Catalog.

    Provides:
    - Async connection pool with SQLAlchemy
    - Parameterised query and command helpers
    - Connection health checks

    Attributes:
        url: Database connection URL
        engine: SQLAlchemy async engine
        pool_size: Maximum pool size
        max_overflow: Maximum overflow connections
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 5,
        echo: bool = False,
    ) -> None:
        """Initialize database connection pool settings.

        Args:
            url: PostgreSQL connection URL (async dialect).
            pool_size: Maximum number of connections to keep in pool.
            max_overflow: Maximum overflow connections.
            echo: If True, log all SQL statements.
        """
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._is_connected = False
        self.last_error: Optional[str] = None

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        return cls(
            url=config.url,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            echo=config.echo,
        )

    async def connect(self) -> None:
        """Create the engine and verify the connection.

        A failed verification is logged, not raised. The engine stays in
        place and later queries reconnect through the pool.
        """
        self.engine = create_async_engine(
            self.url,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_pre_ping=True,
            echo=self.echo,
        )

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._is_connected = True
            self.last_error = None
            await logger.ainfo(
                "database_connected",
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
            )
        except Exception as exc:
            self.last_error = str(exc)
            await logger.awarning("database_connection_failed", error=str(exc))

    async def disconnect(self) -> None:
        """Close all database connections."""
        if not self.engine:
            return

        try:
            await self.engine.dispose()
            self._is_connected = False
            await logger.ainfo("database_disconnected")
        except Exception as exc:
            await logger.aerror("database_disconnection_failed", error=str(exc))
            raise

    def _require_engine(self) -> AsyncEngine:
        if not self.engine:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.engine

    async def health_check(self) -> bool:
        """Check database connection health.

        Returns:
            True if connection is healthy, False otherwise.
        """
        if not self.engine:
            self.last_error = "Database not connected"
            return False

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._is_connected = True
            self.last_error = None
            return True
        except Exception as exc:
            self._is_connected = False
            self.last_error = str(exc)
            await logger.awarning("database_health_check_failed", error=str(exc))
            return False

    async def fetch_all(
        self, query: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """Execute a read query.

        Args:
            query: SQL query string with ``:name`` bind parameters.
            params: Bind parameter values.

        Returns:
            List of rows as column-name dictionaries.
        """
        engine = self._require_engine()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text(query), params or {})
                return [dict(row) for row in result.mappings().all()]
        except Exception as exc:
            await logger.aerror("database_query_failed", query=query, error=str(exc))
            raise

    async def fetch_one(
        self, query: str, params: Optional[dict[str, Any]] = None
    ) -> Optional[dict[str, Any]]:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    async def execute(
        self, query: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """Execute a command in its own committed transaction.

        Args:
            query: SQL command string with ``:name`` bind parameters.
            params: Bind parameter values.

        Returns:
            Rows returned by the command, if any.
        """
        engine = self._require_engine()
        try:
            async with engine.begin() as conn:
                result = await conn.execute(text(query), params or {})
                if not result.returns_rows:
                    return []
                return [dict(row) for row in result.mappings().all()]
        except Exception as exc:
            await logger.aerror("database_command_failed", query=query, error=str(exc))
            raise

    def is_connected(self) -> bool:
        """Check if the last connection attempt succeeded.

        Returns:
            True if connected, False otherwise.
        """
        return self._is_connected

    async def get_pool_status(self) -> dict[str, Any]:
        """Get connection pool status.

        Returns:
            Dictionary with pool statistics.
        """
        if not self.engine:
            return {"status": "not_connected"}

        pool = self.engine.pool
        return {
            "status": "connected" if self._is_connected else "unreachable",
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "checked_out_connections": pool.checkedout(),  # type: ignore
        }
