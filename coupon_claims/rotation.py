from .pool import CouponPool
from .store import ClaimStore


class RotationState:
    """Round-robin pointer into the coupon pool, held by the store."""

    def __init__(self, store: ClaimStore, pool: CouponPool):
        self.store = store
        self.pool = pool

    def advance_and_get(self) -> str:
        index = self.store.advance_rotation(self.pool.size)
        return self.pool.code_at(index)

    def peek(self) -> int:
        if self.pool.empty:
            return 0
        return self.store.rotation_position() % self.pool.size
