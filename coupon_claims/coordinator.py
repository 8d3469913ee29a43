import logging
import time
from typing import Callable, Optional

from .eligibility import EligibilityGate
from .errors import ClaimError, StoreUnavailable
from .ledger import HistoryLedger
from .models import ClaimOutcome, HistoryEntry
from .pool import CouponPool
from .rotation import RotationState
from .session_marker import SessionMarkerSigner
from .store import ClaimStore

logger = logging.getLogger(__name__)


class ClaimCoordinator:
    """Turns one claim request into a single reject or assign-and-record decision.

    Stateless between calls: every piece of shared state lives in the store,
    so any number of coordinators may serve claims concurrently. Checks run
    cheapest first:

    1. session marker, validated locally
    2. identity cooldown (store read)
    3. atomic rotation advance
    4. identity cooldown record
    5. history append (best-effort)
    6. fresh session marker
    """

    def __init__(
        self,
        store: ClaimStore,
        pool: CouponPool,
        signer: SessionMarkerSigner,
        cooldown_seconds: int,
        clock: Callable[[], float] = time.time,
        on_history_failure: Optional[Callable[[HistoryEntry], None]] = None,
    ):
        self.store = store
        self.pool = pool
        self.signer = signer
        self.clock = clock
        self.rotation = RotationState(store, pool)
        self.eligibility = EligibilityGate(store, cooldown_seconds)
        self.ledger = HistoryLedger(store, on_failure=on_history_failure)

    def attempt_claim(self, identity: str, session_marker: Optional[str] = None) -> ClaimOutcome:
        if not identity:
            raise ValueError("requester identity must not be empty")

        now = self.clock()

        if self.signer.is_valid(session_marker, now=now):
            logger.info("Claim rejected, session already claimed: identity=%s", identity)
            return ClaimOutcome.rejected(ClaimError.ALREADY_CLAIMED_SESSION)

        try:
            retry_after = self.eligibility.check(identity, now)
        except StoreUnavailable:
            logger.exception("Eligibility lookup failed: identity=%s", identity)
            return ClaimOutcome.failed()

        if retry_after is not None:
            logger.info("Claim rejected, identity in cooldown: identity=%s retry_after=%s", identity, retry_after)
            return ClaimOutcome.rejected(ClaimError.ALREADY_CLAIMED_IDENTITY, retry_after_seconds=retry_after)

        if self.pool.empty:
            logger.error("No coupons available: the coupon pool is empty")
            return ClaimOutcome.rejected(ClaimError.POOL_EMPTY)

        try:
            coupon = self.rotation.advance_and_get()
        except StoreUnavailable:
            logger.exception("Rotation advance failed: identity=%s", identity)
            return ClaimOutcome.failed()

        # The allocation is final from here on.
        logger.info("Assigned coupon: %s to identity: %s", coupon, identity)

        try:
            self.eligibility.record(identity, now)
        except StoreUnavailable:
            logger.exception("Could not record claim for identity=%s after assigning %s", identity, coupon)

        self.ledger.append(HistoryEntry(coupon=coupon, identity=identity, claimed_at=now))

        return ClaimOutcome.assigned(coupon, self.signer.mint(now=now))

    def history(self, identity: str):
        return self.ledger.query_by_identity(identity)
