"""
Jupiter aggregator client: quotes, swap transactions and token decimals.

Builds UnsignedArtifacts for the preload cache and for synchronous rebuilds.
Buys quote SOL -> token for a lamport amount; sells quote token -> SOL for a
raw token amount computed by the caller, so no float round trip can change
the amount actually sold.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from swapcache.core.errors import SubmissionFailed
from swapcache.core.json_utils import dumps
from swapcache.core.models import DEFAULT_DECIMALS, SOL_MINT, Side, UnsignedArtifact, sol_to_lamports
from swapcache.infra.http import HttpClient, RpcError

log = logging.getLogger("swapcache")


class JupiterClient:
    def __init__(
        self,
        user_public_key: str,
        base_url: str = "https://quote-api.jup.ag/v6",
        tokens_url: str = "https://tokens.jup.ag",
        api_key: Optional[str] = None,
        slippage_bps: int = 100,
        priority_fee_lamports: int = 100000,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        fee_estimator: Optional[Callable[[], Awaitable[int]]] = None,
        fee_ttl_sec: float = 10.0,
    ) -> None:
        self.user_public_key = user_public_key
        self.base_url = base_url.rstrip("/")
        self.tokens_url = tokens_url.rstrip("/")
        self.slippage_bps = slippage_bps
        self.priority_fee_lamports = priority_fee_lamports
        self._clock = clock
        headers = {"x-api-key": api_key} if api_key else None
        self._http = HttpClient(timeout=timeout, headers=headers, client=client)
        self._decimals: Dict[str, int] = {}
        # estimate is shared by every build within fee_ttl_sec
        self._fee_estimator = fee_estimator
        self.fee_ttl_sec = fee_ttl_sec
        self._fee: Optional[Tuple[int, float]] = None

    async def close(self) -> None:
        await self._http.close()

    # ========== Quotes ==========

    async def get_buy_quote(self, token: str, lamports: int) -> Dict[str, Any]:
        return await self._quote(SOL_MINT, token, lamports)

    async def get_sell_quote(self, token: str, raw_amount: int) -> Dict[str, Any]:
        return await self._quote(token, SOL_MINT, raw_amount)

    async def _quote(self, input_mint: str, output_mint: str, amount: int) -> Dict[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(self.slippage_bps),
        }
        try:
            quote = await self._http.get_json(f"{self.base_url}/quote", params=params)
        except (httpx.HTTPError, ValueError) as exc:
            raise SubmissionFailed(f"Jupiter quote failed: {exc}", cause=exc) from exc
        if not isinstance(quote, dict) or "error" in quote:
            err = quote.get("error") if isinstance(quote, dict) else quote
            raise SubmissionFailed(f"Jupiter quote failed: {err}")
        return quote

    async def get_swap_transaction(self, quote: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "quoteResponse": quote,
            "userPublicKey": self.user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": await self.priority_fee(),
        }
        try:
            swap = await self._http.post_json(f"{self.base_url}/swap", body)
        except (httpx.HTTPError, ValueError) as exc:
            raise SubmissionFailed(f"Jupiter swap failed: {exc}", cause=exc) from exc
        if not isinstance(swap, dict) or not swap.get("swapTransaction"):
            raise SubmissionFailed(f"Jupiter swap returned no transaction: {swap}")
        return swap

    async def priority_fee(self) -> int:
        """Live fee estimate when an estimator is wired, else the configured static fee."""
        if self._fee_estimator is None:
            return self.priority_fee_lamports
        now = self._clock()
        if self._fee is not None and now - self._fee[1] < self.fee_ttl_sec:
            return self._fee[0]
        try:
            fee = int(await self._fee_estimator())
        except (httpx.HTTPError, RpcError, KeyError, TypeError, ValueError) as exc:
            log.warning(dumps({"event": "priority_fee_fallback", "fee": self.priority_fee_lamports, "err": str(exc)}))
            return self.priority_fee_lamports
        self._fee = (fee, now)
        return fee

    # ========== Artifacts ==========

    async def build_buy(self, token: str, sol_amount: float) -> UnsignedArtifact:
        lamports = sol_to_lamports(sol_amount)
        quote = await self.get_buy_quote(token, lamports)
        swap = await self.get_swap_transaction(quote)
        return self._artifact(Side.BUY, token, sol_amount, lamports, quote, swap)

    async def build_sell(self, token: str, percent: float, raw_amount: int, decimals: int) -> UnsignedArtifact:
        quote = await self.get_sell_quote(token, raw_amount)
        quoted_in = quote.get("inAmount")
        if quoted_in is not None and str(quoted_in) != str(raw_amount):
            log.warning(dumps({
                "event": "quote_amount_mismatch",
                "token": token,
                "expected": str(raw_amount),
                "quoted": str(quoted_in),
            }))
        swap = await self.get_swap_transaction(quote)
        return self._artifact(Side.SELL, token, percent, raw_amount, quote, swap)

    def _artifact(
        self,
        side: Side,
        token: str,
        amount: float,
        raw_amount: int,
        quote: Dict[str, Any],
        swap: Dict[str, Any],
    ) -> UnsignedArtifact:
        lvbh = swap.get("lastValidBlockHeight")
        return UnsignedArtifact(
            side=side,
            token=token,
            amount=amount,
            raw_amount=raw_amount,
            payload=swap["swapTransaction"],
            built_at=self._clock(),
            quote=quote,
            last_valid_block_height=int(lvbh) if lvbh is not None else None,
        )

    # ========== Token info ==========

    async def get_decimals(self, token: str) -> int:
        """Token precision from the token list; DEFAULT_DECIMALS when unknown."""
        cached = self._decimals.get(token)
        if cached is not None:
            return cached
        try:
            data = await self._http.get_json(f"{self.tokens_url}/token/{token}")
        except (httpx.HTTPError, ValueError) as exc:
            log.debug(dumps({"event": "decimals_lookup_failed", "token": token, "err": str(exc)}))
            return DEFAULT_DECIMALS
        decimals = data.get("decimals") if isinstance(data, dict) else None
        if not isinstance(decimals, int) or decimals < 0:
            return DEFAULT_DECIMALS
        self._decimals[token] = decimals
        return decimals
