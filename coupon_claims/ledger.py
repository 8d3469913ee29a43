import logging
from typing import Callable, List, Optional

from .errors import StoreUnavailable
from .models import HistoryEntry
from .store import ClaimStore

logger = logging.getLogger(__name__)


class HistoryLedger:
    def __init__(self, store: ClaimStore, on_failure: Optional[Callable[[HistoryEntry], None]] = None):
        self.store = store
        self.on_failure = on_failure

    def append(self, entry: HistoryEntry) -> bool:
        """Best-effort append. Failures are logged and handed to ``on_failure``."""
        try:
            self.store.append_history(entry)
        except StoreUnavailable:
            logger.exception(
                "Error saving coupon assignment history: coupon=%s identity=%s",
                entry.coupon, entry.identity,
            )
            self._schedule_repair(entry)
            return False

        logger.debug("Coupon assignment saved to history: coupon=%s identity=%s", entry.coupon, entry.identity)
        return True

    def _schedule_repair(self, entry: HistoryEntry) -> None:
        if self.on_failure is None:
            return
        try:
            self.on_failure(entry)
        except Exception:
            logger.exception("Could not schedule history repair for identity=%s", entry.identity)

    def query_by_identity(self, identity: str) -> List[HistoryEntry]:
        return self.store.history_for(identity)
