"""Database connection, session management and one-time schema preparation."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import Config, get_config
from ..utils.errors import InitializationError, handle_error
from ..utils.resilience import RetryConfig
from ..utils.results import DatabaseResult
from .schema import SchemaManager, SchemaReport

logger = logging.getLogger(__name__)


def to_async_url(url: str) -> str:
    """Convert a plain SQLite URL to the aiosqlite driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


class DatabaseManager:
    """Owns the process-wide store handle and prepares the schema once.

    The engine is opened lazily. ``ensure_schema`` runs at most one
    initialization at a time: concurrent callers await the same task, and a
    success is cached for the lifetime of the manager.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        schema_manager: Optional[SchemaManager] = None,
    ):
        self.config = config or get_config()
        self._async_engine: Optional[AsyncEngine] = None
        self._async_session_factory: Optional[async_sessionmaker] = None
        self._schema_manager = schema_manager or SchemaManager(
            retry_config=RetryConfig(
                max_attempts=self.config.database.index_retry_attempts,
                base_delay=self.config.database.index_retry_delay,
                max_delay=5.0,
                retryable_exceptions=[SQLAlchemyError],
            )
        )
        self._init_task: Optional[asyncio.Task] = None
        self._initialized = False
        self.schema_report: Optional[SchemaReport] = None
        self.sqlite_version: Optional[str] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def async_engine(self) -> AsyncEngine:
        """Get the asynchronous database engine."""
        if self._async_engine is None:
            self._create_async_engine()
        return self._async_engine

    @property
    def async_session_factory(self) -> async_sessionmaker:
        """Get the asynchronous session factory."""
        if self._async_session_factory is None:
            self._create_async_session_factory()
        return self._async_session_factory

    def _create_async_engine(self) -> None:
        """Create the asynchronous database engine."""
        async_url = to_async_url(self.config.database.url)
        logger.info(f"Creating async database engine with URL: {async_url}")

        self._async_engine = create_async_engine(
            async_url,
            echo=self.config.database.echo,
        )

        if async_url.startswith("sqlite"):
            journal_mode = self.config.database.journal_mode

            @event.listens_for(self._async_engine.sync_engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute(f"PRAGMA journal_mode={journal_mode}")
                cursor.close()

    def _create_async_session_factory(self) -> None:
        """Create the asynchronous session factory."""
        self._async_session_factory = async_sessionmaker(
            bind=self.async_engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    async def ensure_schema(self) -> DatabaseResult[bool]:
        """Make sure the notes table exists with every current column."""
        if self._initialized:
            return DatabaseResult.ok(True)

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        else:
            logger.debug("Database initialization in progress, waiting for it")

        # A caller being cancelled must not cancel the shared initialization
        return await asyncio.shield(self._init_task)

    async def _initialize(self) -> DatabaseResult[bool]:
        logger.info("Initializing database")
        try:
            engine = self.async_engine
            self.schema_report = await self._schema_manager.apply(engine)
            async with engine.connect() as conn:
                result = await conn.execute(text("SELECT sqlite_version()"))
                self.sqlite_version = result.scalar()
        except Exception as e:
            error = InitializationError(
                "Failed to initialize database",
                details={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "url": self.config.database.url,
                },
                cause=e,
            )
            error.context.operation = "initialize_database"
            error.context.component = "database"
            handle_error(error)
            await self._reset()
            return DatabaseResult.fail(error)

        self._initialized = True
        if self.schema_report.failed_indexes:
            logger.warning(
                f"Database ready without indexes: {self.schema_report.failed_indexes}"
            )
        logger.info(
            f"Database initialized successfully - SQLite version: {self.sqlite_version}"
        )
        return DatabaseResult.ok(True)

    async def _reset(self) -> None:
        """Forget engine and initialization state so a later call starts over."""
        engine = self._async_engine
        self._async_engine = None
        self._async_session_factory = None
        self._init_task = None
        self._initialized = False
        if engine is not None:
            try:
                await engine.dispose()
            except Exception as e:
                logger.warning(f"Failed to dispose engine after failed init: {e}")

    async def require_schema(self) -> None:
        """Like ``ensure_schema`` but raises the initialization error."""
        result = await self.ensure_schema()
        result.unwrap()

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an asynchronous database session with automatic cleanup."""
        session = self.async_session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close_async(self) -> None:
        """Close database connections asynchronously."""
        if self._init_task is not None and not self._init_task.done():
            await asyncio.shield(self._init_task)
        if self._async_engine:
            await self._async_engine.dispose()
            logger.info("Async database engine disposed")
        self._async_engine = None
        self._async_session_factory = None
        self._init_task = None
        self._initialized = False
