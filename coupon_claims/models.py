from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import ClaimError


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    coupon: str
    identity: str
    claimed_at: float  # epoch seconds


class ClaimStatus(str, Enum):
    ASSIGNED = "assigned"
    REJECTED = "rejected"
    FAILED = "failed"


class ClaimOutcome(BaseModel):
    """Result of one claim attempt.

    Rejections and failures are ordinary values, not exceptions: the HTTP
    layer maps ``status`` and ``error`` onto a response.
    """

    model_config = ConfigDict(frozen=True)

    status: ClaimStatus
    error: Optional[ClaimError] = None
    coupon: Optional[str] = None
    session_marker: Optional[str] = None
    retry_after_seconds: Optional[int] = None

    @classmethod
    def assigned(cls, coupon: str, session_marker: str) -> "ClaimOutcome":
        return cls(status=ClaimStatus.ASSIGNED, coupon=coupon, session_marker=session_marker)

    @classmethod
    def rejected(cls, error: ClaimError, retry_after_seconds: Optional[int] = None) -> "ClaimOutcome":
        return cls(status=ClaimStatus.REJECTED, error=error, retry_after_seconds=retry_after_seconds)

    @classmethod
    def failed(cls) -> "ClaimOutcome":
        return cls(status=ClaimStatus.FAILED, error=ClaimError.STORE_UNAVAILABLE)

    @property
    def ok(self) -> bool:
        return self.status == ClaimStatus.ASSIGNED


class ClaimResponse(BaseModel):
    message: str
    coupon: Optional[str] = None
    error: Optional[ClaimError] = None
    retry_after_seconds: Optional[int] = None


class HistoryResponse(BaseModel):
    history: list[HistoryEntry]
