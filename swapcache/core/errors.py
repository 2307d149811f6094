"""
Error taxonomy for preload and trade execution.

Every failure surfaced to a caller is a TradeError carrying a stable `kind`
string plus the underlying message, so the envelope layer can report it
without inspecting exception types.

Recovery policy:
- RateLimited, raised or reported as UNAVAILABLE by a priority channel, is
  retried with backoff and then recovered by falling back to the direct channel.
- ArtifactExpired and SubmissionFailed of a cached artifact earn exactly one rebuild.
- Everything else propagates unchanged.
"""

from __future__ import annotations

from typing import Optional


class TradeError(Exception):
    kind: str = "internal"

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict:
        return {"error_kind": self.kind, "message": self.message}


class NotReady(TradeError):
    """Venue, balance oracle or signer is not configured."""
    kind = "not_ready"


class NoBalance(TradeError):
    """Sell requested while the token balance is zero."""
    kind = "no_balance"


class AmountTooSmall(TradeError):
    """Sell percentage rounds to zero raw units."""
    kind = "amount_too_small"


class ArtifactExpired(TradeError):
    """Signing or submission rejected an artifact whose freshness data lapsed."""
    kind = "artifact_expired"


class RateLimited(TradeError):
    """Priority channel backpressure."""
    kind = "rate_limited"


class SubmissionFailed(TradeError):
    """Hard venue or network error while building or submitting."""
    kind = "submission_failed"


class ConfirmationTimeout(TradeError):
    """
    No terminal status before the deadline. The transaction may still land;
    callers must not treat this as a failure.
    """
    kind = "confirmation_timeout"

    def __init__(self, message: str = "", *, signature: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause=cause)
        self.signature = signature

    def to_dict(self) -> dict:
        return {**super().to_dict(), "signature": self.signature}


class ExecutionReverted(TradeError):
    """The transaction landed with an on-chain error."""
    kind = "execution_reverted"

    def __init__(self, message: str = "", *, signature: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, cause=cause)
        self.signature = signature

    def to_dict(self) -> dict:
        return {**super().to_dict(), "signature": self.signature}


class InvalidRequest(TradeError):
    """Malformed request at the service boundary."""
    kind = "invalid_request"
