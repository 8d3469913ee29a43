import logging
import time

import psycopg2
from psycopg2 import pool

from .config import Settings
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

MAX_RETRIES = 10
INITIAL_DELAY = 1  # seconds

SCHEMA = """
    CREATE TABLE IF NOT EXISTS coupon_rotation (
        id TEXT PRIMARY KEY,
        position INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS coupon_claims (
        identity TEXT PRIMARY KEY,
        claimed_at DOUBLE PRECISION NOT NULL
    );

    CREATE TABLE IF NOT EXISTS assignment_history (
        id BIGSERIAL PRIMARY KEY,
        coupon TEXT NOT NULL,
        identity TEXT NOT NULL,
        claimed_at DOUBLE PRECISION NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_history_identity
    ON assignment_history (identity, id);
"""


def create_pool(settings: Settings) -> pool.ThreadedConnectionPool:
    # Threaded: FastAPI runs sync endpoints on a worker threadpool.
    return pool.ThreadedConnectionPool(
        minconn=1,
        maxconn=10,
        host=settings.postgres_host,
        port=settings.postgres_port,
        dbname=settings.postgres_db,
        user=settings.postgres_user,
        password=settings.postgres_password,
        connect_timeout=settings.store_connect_timeout,
    )


def open_pool(settings: Settings) -> pool.ThreadedConnectionPool:
    """Single attempt: open the pool and create the claim schema."""
    connection_pool = None
    try:
        connection_pool = create_pool(settings)
        conn = connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(SCHEMA)
            conn.commit()
        finally:
            connection_pool.putconn(conn, close=bool(conn.closed))
    except psycopg2.Error as e:
        if connection_pool is not None:
            connection_pool.closeall()
        raise StoreUnavailable(str(e)) from e

    return connection_pool


def init_db(settings: Settings, max_retries: int = MAX_RETRIES) -> pool.ThreadedConnectionPool:
    """
    Open the connection pool and create the claim schema, with retry.
    Safe for Docker, Kubernetes, restarts. Startup only; requests use open_pool.
    """
    delay = INITIAL_DELAY

    for attempt in range(1, max_retries + 1):
        try:
            connection_pool = open_pool(settings)
            logger.info("Claim schema initialized")
            return connection_pool

        except StoreUnavailable as e:
            logger.warning(
                "DB not ready (attempt %s/%s), retrying in %ss... Error: %s",
                attempt, max_retries, delay, e,
            )
            if attempt < max_retries:
                time.sleep(delay)
                delay = min(delay * 2, 30)

    raise RuntimeError("Failed to connect to DB")
