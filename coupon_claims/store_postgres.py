import threading
from contextlib import contextmanager
from typing import List, Optional

import psycopg2

from .config import Settings
from .db import init_db, open_pool
from .errors import StoreUnavailable
from .models import HistoryEntry
from .store import ClaimStore

ROTATION_ID = "currentIndex"

# Lazy init and advance in one statement: the conflicting row is locked for
# the update, so concurrent callers serialize on it.
ADVANCE_SQL = """
    INSERT INTO coupon_rotation (id, position)
    VALUES (%(id)s, 1 %% %(size)s)
    ON CONFLICT (id) DO UPDATE
    SET position = (coupon_rotation.position + 1) %% %(size)s
    RETURNING position
"""

UPSERT_CLAIM_SQL = """
    INSERT INTO coupon_claims (identity, claimed_at)
    VALUES (%s, %s)
    ON CONFLICT (identity) DO UPDATE SET claimed_at = EXCLUDED.claimed_at
"""


class PostgresClaimStore(ClaimStore):
    """Claim store on Postgres.

    The pool is opened lazily, once, under a lock. An unreachable database
    costs one connect attempt per request, bounded by connect_timeout.
    """

    def __init__(self, connection_pool=None, settings: Optional[Settings] = None):
        if connection_pool is None and settings is None:
            raise ValueError("either connection_pool or settings is required")
        self.connection_pool = connection_pool
        self.settings = settings
        self._pool_lock = threading.Lock()

    def _pool(self):
        if self.connection_pool is None:
            with self._pool_lock:
                if self.connection_pool is None:
                    self.connection_pool = open_pool(self.settings)
        return self.connection_pool

    def warm_up(self, max_retries: int) -> None:
        if self.connection_pool is not None:
            return
        with self._pool_lock:
            if self.connection_pool is None:
                try:
                    self.connection_pool = init_db(self.settings, max_retries=max_retries)
                except RuntimeError as e:
                    raise StoreUnavailable(str(e)) from e

    @contextmanager
    def _cursor(self):
        connection_pool = self._pool()
        try:
            conn = connection_pool.getconn()
        except psycopg2.Error as e:
            raise StoreUnavailable("could not get a database connection") from e

        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            if not conn.closed:
                conn.rollback()
            raise StoreUnavailable(str(e)) from e
        finally:
            connection_pool.putconn(conn, close=bool(conn.closed))

    def advance_rotation(self, pool_size: int) -> int:
        if pool_size <= 0:
            raise ValueError("pool_size must be positive")
        with self._cursor() as cur:
            cur.execute(ADVANCE_SQL, {"id": ROTATION_ID, "size": pool_size})
            (position,) = cur.fetchone()
        return (position - 1) % pool_size

    def rotation_position(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT position FROM coupon_rotation WHERE id = %s", (ROTATION_ID,))
            row = cur.fetchone()
        return row[0] if row else 0

    def last_claimed_at(self, identity: str) -> Optional[float]:
        with self._cursor() as cur:
            cur.execute("SELECT claimed_at FROM coupon_claims WHERE identity = %s", (identity,))
            row = cur.fetchone()
        return float(row[0]) if row else None

    def record_claim(self, identity: str, claimed_at: float, cooldown_seconds: int) -> None:
        with self._cursor() as cur:
            cur.execute(UPSERT_CLAIM_SQL, (identity, claimed_at))

    def append_history(self, entry: HistoryEntry) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO assignment_history (coupon, identity, claimed_at)
                VALUES (%s, %s, %s)
                """,
                (entry.coupon, entry.identity, entry.claimed_at),
            )

    def history_for(self, identity: str) -> List[HistoryEntry]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT coupon, identity, claimed_at
                FROM assignment_history
                WHERE identity = %s
                ORDER BY id
                """,
                (identity,),
            )
            rows = cur.fetchall()
        return [HistoryEntry(coupon=c, identity=i, claimed_at=float(t)) for c, i, t in rows]
