from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from fastapi import Request
import os
from urllib.parse import urlparse, parse_qs, urlunparse
from dotenv import load_dotenv

load_dotenv()

# Base class for models
Base = declarative_base()


def clean_asyncpg_url(url: str) -> tuple[str, dict]:
    """
    Clean database URL for asyncpg compatibility.
    Converts postgresql:// to postgresql+asyncpg://, removes ALL query params
    (asyncpg doesn't support most psycopg2-style params), and converts sslmode
    to connect_args format.
    Returns (cleaned_url, connect_args_dict)
    """
    # Handle Heroku's DATABASE_URL format (postgresql://) by converting to asyncpg format
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    if not url.startswith("postgresql+asyncpg://"):
        return url, {}

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    # asyncpg doesn't support query parameters, so sslmode moves to connect_args
    connect_args = {}
    if 'sslmode' in query_params:
        sslmode = query_params.pop('sslmode')[0]
        connect_args['ssl'] = sslmode != 'disable'
    else:
        # Managed PostgreSQL providers require SSL
        hostname = parsed.hostname or ''
        if ('.amazonaws.com' in hostname or '.herokuapp.com' in hostname or
                'sql.googleapis.com' in hostname or os.getenv('DYNO')):
            connect_args['ssl'] = True

    cleaned_url = urlunparse(parsed._replace(query=''))
    return cleaned_url, connect_args


def build_engine(raw_url: str) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    url, connect_args = clean_asyncpg_url(raw_url)
    kwargs = {"echo": False, "future": True}
    if url.startswith("sqlite"):
        return create_async_engine(url, **kwargs)
    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        connect_args=connect_args,
        **kwargs,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    # Importing the models registers them on Base.metadata
    from estoque.models import code_sequence, product, supplier, user  # noqa

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency for FastAPI to get async database session
async def get_db(request: Request):
    async with request.app.state.sessionmaker() as session:
        try:
            yield session
        finally:
            await session.close()
