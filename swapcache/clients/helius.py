"""
Solana JSON-RPC client (Helius endpoint by default).

Serves two roles:
- Balance oracle: SOL balance, token UI balance, token raw balance.
- Direct submission channel: sendTransaction + getSignatureStatuses.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from swapcache.core.errors import ArtifactExpired, SubmissionFailed
from swapcache.core.json_utils import dumps
from swapcache.core.models import LAMPORTS_PER_SOL, SignatureStatus
from swapcache.infra.http import HttpClient, RpcError

log = logging.getLogger("swapcache")

DEFAULT_PRIORITY_FEE = 100000

# sendTransaction errors that mean the embedded blockhash is no longer valid
_EXPIRY_MARKERS = ("blockhash not found", "block height exceeded", "transaction expired")


class HeliusClient:
    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._http = HttpClient(timeout=timeout, client=client)

    async def close(self) -> None:
        await self._http.close()

    # ========== Balance oracle ==========

    async def get_sol_balance(self, owner: str) -> float:
        result = await self._http.rpc(self.rpc_url, "getBalance", [owner])
        return int(result["value"]) / LAMPORTS_PER_SOL

    async def _token_amounts(self, owner: str, token: str) -> List[Dict[str, Any]]:
        result = await self._http.rpc(
            self.rpc_url,
            "getTokenAccountsByOwner",
            [owner, {"mint": token}, {"encoding": "jsonParsed"}],
        )
        amounts = []
        for acct in result.get("value", []) or []:
            try:
                amounts.append(acct["account"]["data"]["parsed"]["info"]["tokenAmount"])
            except (KeyError, TypeError):
                continue
        return amounts

    async def get_ui_balance(self, owner: str, token: str) -> float:
        amounts = await self._token_amounts(owner, token)
        return float(sum(float(a.get("uiAmount") or 0) for a in amounts))

    async def get_raw_balance(self, owner: str, token: str) -> int:
        amounts = await self._token_amounts(owner, token)
        return sum(int(a.get("amount") or 0) for a in amounts)

    async def get_priority_fee(self) -> int:
        """75th percentile of recent prioritization fees, DEFAULT_PRIORITY_FEE when empty."""
        fees = await self._http.rpc(self.rpc_url, "getRecentPrioritizationFees", [])
        if not fees:
            return DEFAULT_PRIORITY_FEE
        ordered = sorted(int(f.get("prioritizationFee", 0)) for f in fees)
        return ordered[int(len(ordered) * 0.75)] or DEFAULT_PRIORITY_FEE

    # ========== Direct channel ==========

    async def send(self, payload: str) -> str:
        """Send a base64 signed transaction, skipping preflight for latency."""
        params = [
            payload,
            {
                "encoding": "base64",
                "skipPreflight": True,
                "preflightCommitment": "processed",
                "maxRetries": 3,
            },
        ]
        try:
            # never retried here: a resend of the same bytes is the RPC node's job
            return str(await self._http.rpc(self.rpc_url, "sendTransaction", params, retry=False))
        except RpcError as exc:
            if any(m in exc.message.lower() for m in _EXPIRY_MARKERS):
                raise ArtifactExpired(f"sendTransaction rejected stale transaction: {exc.message}", cause=exc) from exc
            raise SubmissionFailed(f"sendTransaction failed: {exc.message}", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise SubmissionFailed(f"sendTransaction failed: {exc}", cause=exc) from exc

    async def get_status(self, signature: str) -> Optional[SignatureStatus]:
        result = await self._http.rpc(
            self.rpc_url,
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        values = (result or {}).get("value") or []
        status = values[0] if values else None
        if not status:
            return None
        log.debug(dumps({"event": "signature_status", "signature": signature, "status": status.get("confirmationStatus")}))
        return SignatureStatus(confirmation_status=status.get("confirmationStatus"), err=status.get("err"))
