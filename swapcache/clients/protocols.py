"""
Collaborator contracts consumed by the cache and the execution pipeline.

Concrete implementations live next to this module (JupiterClient,
HeliusClient, JitoClient, Wallet); tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Union

from swapcache.core.models import BundleSubmission, SignatureStatus, SignedArtifact, UnsignedArtifact, _Unavailable


class VenueClient(Protocol):
    async def build_buy(self, token: str, sol_amount: float) -> UnsignedArtifact: ...

    async def build_sell(self, token: str, percent: float, raw_amount: int, decimals: int) -> UnsignedArtifact: ...

    async def get_decimals(self, token: str) -> int: ...


class BalanceOracle(Protocol):
    async def get_sol_balance(self, owner: str) -> float: ...

    async def get_ui_balance(self, owner: str, token: str) -> float: ...

    async def get_raw_balance(self, owner: str, token: str) -> int: ...


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign(self, artifact: UnsignedArtifact) -> SignedArtifact: ...


class PriorityChannel(Protocol):
    async def send(self, payloads: Sequence[str]) -> Union[BundleSubmission, _Unavailable]: ...

    async def poll(self, bundle_id: str) -> BundleSubmission: ...


class DirectChannel(Protocol):
    async def send(self, payload: str) -> str: ...

    async def get_status(self, signature: str) -> Optional[SignatureStatus]: ...
