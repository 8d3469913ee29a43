import math
from typing import Optional

from .store import ClaimStore


class EligibilityGate:
    """Cooldown gate keyed by requester network identity.

    ``check`` and ``record`` are separate round trips. Two concurrent claims
    from the same identity may both pass ``check``; that is accepted.
    """

    def __init__(self, store: ClaimStore, cooldown_seconds: int):
        self.store = store
        self.cooldown_seconds = cooldown_seconds

    def check(self, identity: str, now: float) -> Optional[int]:
        """Return the whole seconds left to wait, or None when eligible."""
        last = self.store.last_claimed_at(identity)
        if last is None:
            return None
        # A record from a replica whose clock runs ahead never extends the wait.
        remaining = min(self.cooldown_seconds - (now - last), self.cooldown_seconds)
        if remaining <= 0:
            return None
        return int(math.ceil(remaining))

    def record(self, identity: str, now: float) -> None:
        self.store.record_claim(identity, now, self.cooldown_seconds)
