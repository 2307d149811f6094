"""
Value types shared by the cache, the venue clients and the submission path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_DECIMALS = 9

K = TypeVar("K")
V = TypeVar("V")


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class UnsignedArtifact:
    """
    Venue-built unsigned transaction plus the inputs that produced it.

    `amount` echoes the caller's input (SOL for buys, percent for sells);
    `raw_amount` is what the venue actually quoted (lamports or raw token units).
    """
    side: Side
    token: str
    amount: float
    raw_amount: int
    payload: str  # base64 serialized unsigned VersionedTransaction
    built_at: float
    quote: Dict[str, Any] = field(default_factory=dict)
    last_valid_block_height: Optional[int] = None


@dataclass(frozen=True)
class SignedArtifact:
    payload: str  # base64 serialized signed transaction
    signature: str  # base58 fee-payer signature
    source: UnsignedArtifact


class BundleStatus(str, Enum):
    PENDING = "pending"
    LANDED = "landed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def terminal(self) -> bool:
        return self is not BundleStatus.PENDING


@dataclass
class BundleSubmission:
    id: str
    status: BundleStatus = BundleStatus.PENDING
    result_artifact_ids: Optional[List[str]] = None
    error: Optional[str] = None


class _Unavailable:
    """Sentinel returned by a priority channel that is rate limiting us."""

    _instance: Optional["_Unavailable"] = None

    def __new__(cls) -> "_Unavailable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()


@dataclass(frozen=True)
class SignatureStatus:
    confirmation_status: Optional[str]  # processed | confirmed | finalized
    err: Optional[Any] = None

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_status in ("confirmed", "finalized")


@dataclass(frozen=True)
class ConfirmationResult:
    """
    Outcome of confirmation polling.

    `timed_out` means no terminal state was seen: the transaction may still
    land, which is different from `error` (landed and failed).
    """
    confirmed: bool
    error: Optional[str] = None
    timed_out: bool = False
    elapsed_ms: float = 0.0


@dataclass
class PartialResult(Generic[K, V]):
    """Independent per-key outcomes: one failing key never hides the others."""
    successes: Dict[K, V] = field(default_factory=dict)
    failures: Dict[K, str] = field(default_factory=dict)

    @property
    def ok_count(self) -> int:
        return len(self.successes)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": sorted(self.successes.keys()),
            "failed": {str(k): v for k, v in self.failures.items()},
        }


def sol_to_lamports(amount: float) -> int:
    # route through str so 0.36 becomes exactly 360000000
    return int((Decimal(str(amount)) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_FLOOR))


def raw_amount_for_percent(raw_balance: int, percent: float) -> int:
    """Floor of raw_balance * percent / 100 in exact arithmetic, never overselling."""
    if raw_balance <= 0 or percent <= 0:
        return 0
    return int((Decimal(raw_balance) * Decimal(str(percent))) // Decimal(100))
