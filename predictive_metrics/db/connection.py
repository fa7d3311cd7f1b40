# predictive_metrics/db/connection.py
from typing import Any, Dict, Literal, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from supabase import AsyncClient, acreate_client

from predictive_metrics.config import config
from predictive_metrics.exceptions import ConfigError, DatabaseError
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.models import Base
from predictive_metrics.db.interface import DatabaseInterface, SQLAlchemyInterface, SupabaseInterface

DatabaseType = Literal["postgresql", "supabase", "sqlite"]
DATABASE_TYPES = ("postgresql", "supabase", "sqlite")

logger = get_logger('predictive_metrics.db')


class DatabaseConfig:
    """Configuration for database connections."""

    @staticmethod
    def get_db_type() -> DatabaseType:
        """Get database type from configuration."""
        return config.db_config['type']

    @staticmethod
    def get_sql_config() -> Dict[str, Any]:
        """Get SQL connection configuration."""
        return config.db_config

    @staticmethod
    def get_supabase_config() -> Dict[str, str]:
        """Get Supabase connection configuration."""
        return config.supabase_config

    @staticmethod
    def get_connection_string(db_type: DatabaseType) -> str:
        """Get the async SQLAlchemy connection string."""
        sql_config = DatabaseConfig.get_sql_config()

        if db_type == "sqlite":
            return f"sqlite+aiosqlite:///{sql_config['database']}"

        return (
            f"{sql_config['engine']}://{sql_config['username']}:{sql_config['password']}"
            f"@{sql_config['host']}:{sql_config['port']}/{sql_config['database']}"
        )


class DatabaseConnection:
    """Database connection handler for PostgreSQL, SQLite and Supabase."""

    def __init__(self, db_type: Optional[DatabaseType] = None, url: Optional[str] = None):
        """Initialize database connection settings.

        Args:
            db_type: Backend type (defaults to the configured one)
            url: Explicit SQLAlchemy URL, overriding the configured one
        """
        self._db_type = (db_type or DatabaseConfig.get_db_type()).lower()
        if self._db_type not in DATABASE_TYPES:
            raise ConfigError(f"Unknown database type: {self._db_type}", code='UNKNOWN_DATABASE_TYPE')

        self._url = url
        self._engine: Optional[AsyncEngine] = None
        self._supabase: Optional[AsyncClient] = None

    def _initialize_engine(self) -> AsyncEngine:
        """Create the async SQLAlchemy engine."""
        sql_config = DatabaseConfig.get_sql_config()
        url = self._url or DatabaseConfig.get_connection_string(self._db_type)

        try:
            if self._db_type == "sqlite":
                return create_async_engine(url, echo=sql_config['echo'])

            return create_async_engine(
                url,
                pool_size=sql_config['pool_size'],
                max_overflow=sql_config['max_overflow'],
                pool_timeout=sql_config['pool_timeout'],
                pool_recycle=sql_config['pool_recycle'],
                echo=sql_config['echo']
            )
        except Exception as e:
            raise DatabaseError(f"Failed to initialize {self._db_type} connection: {str(e)}")

    async def _initialize_supabase(self) -> AsyncClient:
        """Create the async Supabase client."""
        supabase_config = DatabaseConfig.get_supabase_config()

        if not supabase_config['url'] or not supabase_config['key']:
            raise DatabaseError("Supabase URL and key must be provided", code='MISSING_CREDENTIALS')

        try:
            return await acreate_client(supabase_config['url'], supabase_config['key'])
        except Exception as e:
            raise DatabaseError(f"Failed to initialize Supabase connection: {str(e)}")

    @property
    def engine(self) -> AsyncEngine:
        """Get the SQLAlchemy engine (SQL backends only)."""
        if self._db_type == "supabase":
            raise DatabaseError("engine is only available for SQL connections")

        if self._engine is None:
            self._engine = self._initialize_engine()
        return self._engine

    async def get_supabase(self) -> AsyncClient:
        """Get the Supabase client, creating it on first use."""
        if self._supabase is None:
            self._supabase = await self._initialize_supabase()
        return self._supabase

    async def create_interface(self) -> DatabaseInterface:
        """Create the database interface for the configured backend."""
        if self._db_type == "supabase":
            return SupabaseInterface(await self.get_supabase())

        return SQLAlchemyInterface(self.engine)

    async def create_all_tables(self):
        """Create every table of the schema (SQL backends only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created prediction tables on {self._db_type}")

    async def dispose(self):
        """Release pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    @property
    def db_type(self) -> DatabaseType:
        """Get current database type."""
        return self._db_type
