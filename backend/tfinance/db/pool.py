import logging
from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from tfinance.core.config import settings
from tfinance.db.schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)

DB_POOL = ConnectionPool(
    settings.database_url,
    min_size=settings.db_pool_min,
    max_size=settings.db_pool_max,
    timeout=settings.db_pool_timeout,
    max_waiting=settings.db_pool_max_waiting,
    open=False,
    kwargs={"row_factory": dict_row},
)


def open_db_pool() -> None:
    DB_POOL.open()


def close_db_pool() -> None:
    DB_POOL.close()


@contextmanager
def db_conn():
    with DB_POOL.connection() as conn:
        yield conn


def ensure_schema(cur) -> None:
    for statement in SCHEMA_STATEMENTS:
        cur.execute(statement)


def init_db() -> None:
    with db_conn() as conn, conn.cursor() as cur:
        ensure_schema(cur)
        conn.commit()
    logger.info("Database schema ensured (%d statements)", len(SCHEMA_STATEMENTS))
