from pathlib import Path
from typing import List, Optional

import redis

from .errors import StoreUnavailable
from .models import HistoryEntry
from .store import ClaimStore

ROTATION_KEY = "coupon:rotation"
CLAIM_KEY = "coupon:claim:{identity}"
HISTORY_KEY = "coupon:history:{identity}"

LUA_SCRIPT_PATH = Path(__file__).with_name("rotation.lua")

with open(LUA_SCRIPT_PATH, "r") as f:
    ROTATION_LUA = f.read()


class RedisClaimStore(ClaimStore):
    def __init__(self, client: "redis.Redis"):
        self.r = client
        # register_script caches by SHA and reloads on NOSCRIPT
        self._advance = self.r.register_script(ROTATION_LUA)

    @classmethod
    def from_url(cls, url: str, socket_timeout: Optional[float] = None) -> "RedisClaimStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def warm_up(self, max_retries: int) -> None:
        try:
            self.r.ping()
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e

    def advance_rotation(self, pool_size: int) -> int:
        if pool_size <= 0:
            raise ValueError("pool_size must be positive")
        try:
            return int(self._advance(keys=[ROTATION_KEY], args=[pool_size]))
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e

    def rotation_position(self) -> int:
        try:
            value = self.r.get(ROTATION_KEY)
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e
        return int(value) if value is not None else 0

    def last_claimed_at(self, identity: str) -> Optional[float]:
        try:
            value = self.r.get(CLAIM_KEY.format(identity=identity))
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e
        return float(value) if value is not None else None

    def record_claim(self, identity: str, claimed_at: float, cooldown_seconds: int) -> None:
        # The key outliving the cooldown is harmless; expiring early is not.
        try:
            self.r.set(CLAIM_KEY.format(identity=identity), repr(claimed_at), ex=cooldown_seconds + 1)
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e

    def append_history(self, entry: HistoryEntry) -> None:
        try:
            self.r.rpush(HISTORY_KEY.format(identity=entry.identity), entry.model_dump_json())
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e

    def history_for(self, identity: str) -> List[HistoryEntry]:
        try:
            raw = self.r.lrange(HISTORY_KEY.format(identity=identity), 0, -1)
        except redis.RedisError as e:
            raise StoreUnavailable(str(e)) from e
        return [HistoryEntry.model_validate_json(item) for item in raw]
