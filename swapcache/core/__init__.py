"""
Core utilities package.

This package contains the error taxonomy, shared value types, the result
envelope, the trade logging context and JSON helpers.
"""

from swapcache.core.errors import (
    AmountTooSmall,
    ArtifactExpired,
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidRequest,
    NoBalance,
    NotReady,
    RateLimited,
    SubmissionFailed,
    TradeError,
)
from swapcache.core.models import (
    UNAVAILABLE,
    BundleStatus,
    BundleSubmission,
    ConfirmationResult,
    PartialResult,
    Side,
    SignatureStatus,
    SignedArtifact,
    UnsignedArtifact,
)
from swapcache.core.result import Envelope
from swapcache.core.trade_context import TradeContext

__all__ = [
    "AmountTooSmall",
    "ArtifactExpired",
    "ConfirmationTimeout",
    "ExecutionReverted",
    "InvalidRequest",
    "NoBalance",
    "NotReady",
    "RateLimited",
    "SubmissionFailed",
    "TradeError",
    "UNAVAILABLE",
    "BundleStatus",
    "BundleSubmission",
    "ConfirmationResult",
    "PartialResult",
    "Side",
    "SignatureStatus",
    "SignedArtifact",
    "UnsignedArtifact",
    "Envelope",
    "TradeContext",
]
