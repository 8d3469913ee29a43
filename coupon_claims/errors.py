from enum import Enum


class ClaimError(str, Enum):
    ALREADY_CLAIMED_SESSION = "ALREADY_CLAIMED_SESSION"
    ALREADY_CLAIMED_IDENTITY = "ALREADY_CLAIMED_IDENTITY"
    POOL_EMPTY = "POOL_EMPTY"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class StoreUnavailable(Exception):
    """The durable store could not be reached or rejected the operation.

    Backends raise this from the driver's own error (chained), so callers
    never depend on psycopg2 or redis exception types.
    """
