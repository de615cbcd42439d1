from contextlib import contextmanager
from pathlib import Path

import structlog
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from pocketledger.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def _make_pool(conninfo: str, name: str) -> ConnectionPool:
    return ConnectionPool(
        conninfo,
        name=name,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        timeout=settings.db_pool_timeout,
        max_waiting=settings.db_pool_max_waiting,
        open=False,
        kwargs={"row_factory": dict_row},
    )


# Caller-bound connections, subject to row-level security.
DB_POOL = _make_pool(settings.database_url, "scoped")
# Service-role connections; only the access policy uses these.
ELEVATED_POOL = _make_pool(settings.elevated_database_url, "elevated")


def open_db_pool() -> None:
    DB_POOL.open()
    ELEVATED_POOL.open()
    log.info("db_pools_opened", min_size=settings.db_pool_min, max_size=settings.db_pool_max)


def close_db_pool() -> None:
    DB_POOL.close()
    ELEVATED_POOL.close()
    log.info("db_pools_closed")


@contextmanager
def scoped_conn(user_id: str):
    """Connection whose current transaction is bound to ``user_id``.

    The setting is transaction-local so it never leaks into the next
    borrower of the pooled connection.
    """
    with DB_POOL.connection() as conn:
        conn.execute("SELECT set_config('app.current_user_id', %s, true)", (user_id,))
        yield conn


@contextmanager
def elevated_conn():
    with ELEVATED_POOL.connection() as conn:
        yield conn


def apply_schema() -> None:
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    with elevated_conn() as conn:
        conn.execute(ddl)
        conn.commit()
    log.info("schema_applied", path=str(SCHEMA_PATH))
