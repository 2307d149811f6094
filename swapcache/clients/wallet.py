"""
Keypair-backed transaction signer.

Key custody is out of scope: the secret arrives as a base58 string from the
environment. Signing rejects artifacts older than `max_age_sec`, since their
recent blockhash is almost certainly past its last valid block height.
"""

from __future__ import annotations

import base64
import time
from typing import Callable, Optional

import base58
from solders.keypair import Keypair
from solders.transaction import Transaction, VersionedTransaction

from swapcache.core.errors import ArtifactExpired, NotReady, SubmissionFailed
from swapcache.core.json_utils import loads
from swapcache.core.models import SignedArtifact, UnsignedArtifact


class Wallet:
    def __init__(
        self,
        keypair: Optional[Keypair] = None,
        max_age_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._keypair = keypair
        self.max_age_sec = max_age_sec
        self._clock = clock

    @classmethod
    def from_base58(cls, secret: str, **kwargs) -> "Wallet":
        """Accepts a base58 secret or the JSON byte-array format of solana-keygen."""
        text = secret.strip()
        try:
            if text.startswith("["):
                raw = bytes(loads(text))
            else:
                raw = base58.b58decode(text)
            keypair = Keypair.from_bytes(raw)
        except (TypeError, ValueError) as exc:
            raise NotReady("invalid private key format", cause=exc) from exc
        return cls(keypair, **kwargs)

    @property
    def is_locked(self) -> bool:
        return self._keypair is None

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey()) if self._keypair else ""

    def lock(self) -> None:
        self._keypair = None

    def sign(self, artifact: UnsignedArtifact) -> SignedArtifact:
        if self._keypair is None:
            raise NotReady("wallet is locked")
        age = self._clock() - artifact.built_at
        if age > self.max_age_sec:
            raise ArtifactExpired(f"artifact is {age:.1f}s old (max {self.max_age_sec:.0f}s)")

        try:
            raw = base64.b64decode(artifact.payload)
        except ValueError as exc:
            raise SubmissionFailed("artifact payload is not base64", cause=exc) from exc

        try:
            tx = VersionedTransaction.from_bytes(raw)
            signed = VersionedTransaction(tx.message, [self._keypair])
        except Exception as versioned_exc:
            # legacy transactions are still returned by some venues
            try:
                legacy = Transaction.from_bytes(raw)
                legacy.sign([self._keypair], legacy.message.recent_blockhash)
                signed = legacy
            except Exception as exc:
                raise SubmissionFailed(f"could not sign transaction: {versioned_exc}", cause=exc) from exc

        return SignedArtifact(
            payload=base64.b64encode(bytes(signed)).decode("ascii"),
            signature=str(signed.signatures[0]),
            source=artifact,
        )
