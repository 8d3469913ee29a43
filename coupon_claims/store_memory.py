import threading
from typing import Dict, List, Optional

from .models import HistoryEntry
from .store import ClaimStore


class MemoryClaimStore(ClaimStore):
    """Process-local store for tests and single-process development.

    Allocation order is only guaranteed within one non-restarting process;
    replicated deployments must use the postgres or redis backend.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._position: Optional[int] = None
        self._claims: Dict[str, float] = {}
        self._history: List[HistoryEntry] = []

    def advance_rotation(self, pool_size: int) -> int:
        if pool_size <= 0:
            raise ValueError("pool_size must be positive")
        with self._lock:
            current = (self._position or 0) % pool_size
            self._position = (current + 1) % pool_size
            return current

    def rotation_position(self) -> int:
        with self._lock:
            return self._position or 0

    def last_claimed_at(self, identity: str) -> Optional[float]:
        with self._lock:
            return self._claims.get(identity)

    def record_claim(self, identity: str, claimed_at: float, cooldown_seconds: int) -> None:
        with self._lock:
            self._claims[identity] = claimed_at

    def append_history(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._history.append(entry)

    def history_for(self, identity: str) -> List[HistoryEntry]:
        with self._lock:
            return [entry for entry in self._history if entry.identity == identity]
