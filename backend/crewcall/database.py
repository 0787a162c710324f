import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import AsyncAdaptedQueuePool

from crewcall.config import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def sync_database_url(settings: Settings) -> str:
    """URL for synchronous tooling such as Alembic.

    An explicitly configured DATABASE_URL_SYNC wins; otherwise the asyncpg
    DATABASE_URL is rewritten for psycopg2 so one variable is enough.
    """
    if "DATABASE_URL_SYNC" in settings.model_fields_set:
        return settings.DATABASE_URL_SYNC
    url = settings.DATABASE_URL.replace("+asyncpg", "+psycopg2")
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------
# Load is small and bursty: a reminder pass runs its window queries one
# after another on a single session, then one short UPDATE per send, while
# Twilio webhooks each hold a session for a lookup and a write or two.
#
# pool_size / max_overflow:  DB_POOL_SIZE covers webhook bursts when a batch
#                            of reminders draws replies at the same time.
# pool_recycle:              DB_POOL_RECYCLE_SECONDS; the scheduler sits idle
#                            between ticks, so connections age out quietly.
# statement timeout:         DB_STATEMENT_TIMEOUT_SECONDS, client and server
#                            side, so a stuck query fails the cycle (and the
#                            scheduler retries) instead of hanging it.
# ---------------------------------------------------------------------------
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    poolclass=AsyncAdaptedQueuePool,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
    pool_pre_ping=True,
    connect_args={
        "command_timeout": settings.DB_STATEMENT_TIMEOUT_SECONDS,
        "server_settings": {"statement_timeout": str(settings.DB_STATEMENT_TIMEOUT_SECONDS * 1000)},
    },
)

_sync_engine = engine.sync_engine


@event.listens_for(_sync_engine, "checkin")
def _on_checkin(dbapi_conn, connection_rec):
    pool = _sync_engine.pool
    if pool.overflow() > pool.size() * 0.5:
        # Webhook bursts are outrunning the pool
        logger.warning(
            "db_pool: overflow %s above half of pool_size %s (checkedin=%s)",
            pool.overflow(), pool.size(), pool.checkedin(),
        )


AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()
