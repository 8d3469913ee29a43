from typing import Optional

from celery.utils.log import get_task_logger

from .celery_app import app, settings
from .errors import StoreUnavailable
from .models import HistoryEntry
from .store import ClaimStore, build_store

logger = get_task_logger(__name__)

_store: Optional[ClaimStore] = None


def get_store() -> ClaimStore:
    global _store
    if _store is None:
        _store = build_store(settings)
    return _store


def set_store(store: ClaimStore) -> None:
    global _store
    _store = store


@app.task(bind=True, max_retries=3, default_retry_delay=5)
def replay_history_entry(self, coupon: str, identity: str, claimed_at: float):
    """Re-append a history entry whose write failed during a claim."""
    entry = HistoryEntry(coupon=coupon, identity=identity, claimed_at=claimed_at)
    try:
        get_store().append_history(entry)
    except StoreUnavailable as e:
        logger.warning("[%s] history replay failed, retrying: %s", identity, e)
        raise self.retry(exc=e)

    logger.info("[%s] history entry replayed for coupon %s", identity, coupon)
    return {"status": "replayed", "coupon": coupon, "identity": identity}


def enqueue_history_repair(entry: HistoryEntry) -> None:
    replay_history_entry.apply_async(kwargs=entry.model_dump())
