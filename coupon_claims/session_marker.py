import time
from typing import Callable, Optional

import jwt

MARKER_TOKEN_TYPE = "coupon_claim"
MARKER_ALGORITHM = "HS256"


class SessionMarkerSigner:
    """Mints and validates the client-held "already claimed" marker.

    The marker is an HS256 JWT carrying only its type and lifetime. Expiry is
    checked against the injected clock so the marker and the eligibility
    cooldown always agree on what "now" is.
    """

    def __init__(self, secret: str, ttl_seconds: int, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("session marker secret must not be empty")
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def mint(self, now: Optional[float] = None) -> str:
        issued_at = self.clock() if now is None else now
        payload = {
            "type": MARKER_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=MARKER_ALGORITHM)

    def is_valid(self, token: Optional[str], now: Optional[float] = None) -> bool:
        token = (token or "").strip()
        if not token:
            return False
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[MARKER_ALGORITHM],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError:
            return False
        if payload.get("type") != MARKER_TOKEN_TYPE:
            return False
        current = self.clock() if now is None else now
        try:
            expires_at = float(payload["exp"])
        except (TypeError, ValueError):
            return False
        return current < expires_at
