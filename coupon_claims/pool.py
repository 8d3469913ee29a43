from typing import Iterable, Tuple


class CouponPool:
    """Fixed, ordered set of distributable codes."""

    def __init__(self, codes: Iterable[str]):
        self._codes: Tuple[str, ...] = tuple(codes)

    def __len__(self) -> int:
        return len(self._codes)

    def __iter__(self):
        return iter(self._codes)

    def __repr__(self) -> str:
        return f"CouponPool({list(self._codes)!r})"

    @property
    def size(self) -> int:
        return len(self._codes)

    @property
    def empty(self) -> bool:
        return not self._codes

    def code_at(self, index: int) -> str:
        if self.empty:
            raise IndexError("coupon pool is empty")
        return self._codes[index % len(self._codes)]
