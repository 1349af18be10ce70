import logging
import ssl
from typing import Any, List, Mapping, Optional, Union

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from user_service.config import Settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def build_database_url(settings: Settings) -> URL:
    """Resolve the async driver URL from either DATABASE_URL or the DB_* settings."""
    if settings.DATABASE_URL:
        raw = settings.DATABASE_URL
        # Hosting providers hand out plain mysql:// URLs; the async driver needs its own scheme
        if raw.startswith("mysql://"):
            raw = raw.replace("mysql://", "mysql+aiomysql://", 1)
        elif raw.startswith("mysql+pymysql://"):
            raw = raw.replace("mysql+pymysql://", "mysql+aiomysql://", 1)
        return make_url(raw)

    query = {}
    host: Optional[str] = settings.DB_HOST
    port: Optional[int] = settings.DB_PORT
    if settings.DB_SOCKET_PATH:
        # Cloud SQL style unix socket: host/port are ignored by the driver
        query["unix_socket"] = settings.DB_SOCKET_PATH
        host = None
        port = None

    return URL.create(
        "mysql+aiomysql",
        username=settings.DB_USER,
        password=settings.DB_PASSWORD or None,
        host=host,
        port=port,
        database=settings.DB_NAME,
        query=query,
    )


def build_connect_args(settings: Settings) -> dict:
    if not (settings.DB_SSL or settings.DB_SSL_CA):
        return {}
    context = ssl.create_default_context(cafile=settings.DB_SSL_CA)
    return {"ssl": context}


class Database:
    """Process-wide async connection pool.

    Created once at startup and passed to whoever needs storage access.
    ``connect()`` proves the configuration by opening one connection, so a
    bad host or bad credentials fail the first caller instead of a later
    request. ``disconnect()`` releases the pool exactly once.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        url: Union[str, URL, None] = None,
        pool_size: Optional[int] = None,
        echo: bool = False,
    ):
        if url is None and settings is None:
            raise ValueError("Database needs either settings or a url")
        if url is not None:
            self.url = make_url(url)
            self._connect_args = {}
        else:
            self.url = build_database_url(settings)
            self._connect_args = build_connect_args(settings)
        self._pool_size = pool_size or (settings.DB_POOL_SIZE if settings else 10)
        self._echo = echo or bool(settings and settings.DEBUG)
        self._engine: Optional[AsyncEngine] = None

    def _engine_options(self) -> dict:
        options: dict = {"echo": self._echo}
        if self.url.get_backend_name() == "sqlite":
            if self.url.database in (None, "", ":memory:"):
                # In-memory SQLite shared across connections
                options["poolclass"] = StaticPool
            return options

        options.update(
            pool_size=self._pool_size,
            max_overflow=0,
            pool_pre_ping=True,
            pool_recycle=300,
            connect_args=self._connect_args,
        )
        return options

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._engine

    async def connect(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine

        engine = create_async_engine(self.url, **self._engine_options())
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "Database connection failed: %s (host=%s, user=%s, database=%s)",
                exc,
                self.url.host or self.url.query.get("unix_socket"),
                self.url.username,
                self.url.database,
            )
            await engine.dispose()
            raise

        self._engine = engine
        logger.info("Database connected successfully (%s)", self.url.render_as_string(hide_password=True))
        return engine

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        await engine.dispose()
        logger.info("Database connection pool closed")

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def execute(
        self, statement: Any, params: Optional[Mapping[str, Any]] = None
    ) -> Union[List[Mapping[str, Any]], int]:
        """Run one statement in its own transaction.

        Returns the rows as mappings for row-returning statements, the
        affected row count otherwise.
        """
        if isinstance(statement, str):
            statement = text(statement)
        async with self.engine.begin() as conn:
            if params:
                result = await conn.execute(statement, params)
            else:
                result = await conn.execute(statement)
            if result.returns_rows:
                return list(result.mappings().all())
            return result.rowcount

    async def insert(self, statement: Any) -> int:
        """Run an INSERT and return the storage-assigned primary key."""
        async with self.engine.begin() as conn:
            result = await conn.execute(statement)
            return result.inserted_primary_key[0]


def get_db(request: Request) -> Database:
    """Dependency for getting the shared database"""
    return request.app.state.database
