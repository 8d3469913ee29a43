import logging
from typing import List, Optional

from .config import Settings
from .models import HistoryEntry

logger = logging.getLogger(__name__)


class ClaimStore:
    """Durable state shared by every coordinator replica.

    Holds the rotation pointer, the identity -> last claim timestamps and the
    append-only assignment history. Every method raises
    ``errors.StoreUnavailable`` when the backend cannot serve the request.
    """

    def warm_up(self, max_retries: int) -> None:
        """Connect ahead of the first request. Raises StoreUnavailable on failure."""

    def advance_rotation(self, pool_size: int) -> int:
        """Atomically return the pointer before advancing it modulo ``pool_size``.

        Creates the pointer at 0 when it does not exist yet, in the same
        atomic operation.
        """
        raise NotImplementedError

    def rotation_position(self) -> int:
        raise NotImplementedError

    def last_claimed_at(self, identity: str) -> Optional[float]:
        raise NotImplementedError

    def record_claim(self, identity: str, claimed_at: float, cooldown_seconds: int) -> None:
        raise NotImplementedError

    def append_history(self, entry: HistoryEntry) -> None:
        raise NotImplementedError

    def history_for(self, identity: str) -> List[HistoryEntry]:
        raise NotImplementedError


def build_store(settings: Settings) -> ClaimStore:
    backend = settings.store_backend
    logger.info("Using %s claim store", backend)
    if backend == "postgres":
        from .store_postgres import PostgresClaimStore

        return PostgresClaimStore(settings=settings)
    if backend == "redis":
        from .store_redis import RedisClaimStore

        return RedisClaimStore.from_url(settings.redis_url, socket_timeout=settings.store_connect_timeout)
    if backend == "memory":
        from .store_memory import MemoryClaimStore

        logger.warning(
            "Memory claim store is process-local: rotation order is lost on restart "
            "and not shared between replicas. Use postgres or redis in production."
        )
        return MemoryClaimStore()
    raise ValueError(f"Unknown store backend {backend!r}")
