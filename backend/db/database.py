"""
SmartSpec Database Configuration
PostgreSQL - SQLAlchemy 2.0 Async
"""
import ssl
from typing import Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
import logging

logger = logging.getLogger(__name__)


def convert_url_for_asyncpg(url: str) -> str:
    """Convert standard PostgreSQL URL to asyncpg-compatible format"""
    if not url:
        return url

    parsed = urlparse(url)

    # Other drivers (e.g. sqlite+aiosqlite) are passed through untouched
    if parsed.scheme not in ('postgres', 'postgresql', 'postgresql+asyncpg'):
        return url

    # asyncpg doesn't support sslmode/channel_binding query params
    query_params = parse_qs(parsed.query)
    query_params.pop('sslmode', None)
    query_params.pop('channel_binding', None)
    new_query = urlencode({k: v[0] for k, v in query_params.items()})

    return urlunparse((
        'postgresql+asyncpg',
        parsed.netloc,
        parsed.path,
        parsed.params,
        new_query,
        parsed.fragment
    ))


def requires_ssl(url: str) -> bool:
    query_params = parse_qs(urlparse(url).query)
    return query_params.get('sslmode', [''])[0] in ('require', 'verify-ca', 'verify-full')


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine; pooling options only apply to PostgreSQL"""
    if not database_url:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    url = convert_url_for_asyncpg(database_url)
    if not url.startswith('postgresql+asyncpg'):
        return create_async_engine(url, echo=echo)

    connect_args = {}
    if requires_ssl(database_url):
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args=connect_args
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


class Base(DeclarativeBase):
    pass


async def init_db(engine: Optional[AsyncEngine]):
    """Initialize database - create all tables"""
    if engine is None:
        logger.error("Database engine not initialized. Check DATABASE_URL.")
        return

    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized with tables and constraints")
