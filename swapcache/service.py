"""
TradeService: the request/envelope boundary in front of the cache and the
execution pipeline.

Every operation returns an Envelope; nothing raises past this layer. Typed
requests can be dispatched with `handle`, or plain dicts (as received from a
UI message channel) with `handle_message`.

Usage:
    service = TradeService.from_settings(Settings.load())
    env = await service.preload("TOKEN_MINT")
    env = await service.execute("TOKEN_MINT", Side.BUY, 0.5)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from swapcache.cache.preload_cache import CacheStore
from swapcache.cache.preloader import Preloader
from swapcache.clients.helius import HeliusClient
from swapcache.clients.jito import JitoClient
from swapcache.clients.jupiter import JupiterClient
from swapcache.clients.protocols import BalanceOracle, Signer
from swapcache.clients.wallet import Wallet
from swapcache.config.config import Settings
from swapcache.config.presets import PresetBook
from swapcache.core.errors import InvalidRequest, NotReady, TradeError
from swapcache.core.json_utils import dumps
from swapcache.core.models import Side
from swapcache.core.result import Envelope
from swapcache.execution.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from swapcache.execution.confirmation_poller import ConfirmationPoller
from swapcache.execution.submission_router import SubmissionRouter
from swapcache.execution.trade_pipeline import TradePipeline
from swapcache.infra.locks import ExecutionLocks
from swapcache.monitoring.metrics import SwapMetrics

log = logging.getLogger("swapcache")


# ========== Requests ==========

@dataclass(frozen=True)
class PreloadRequest:
    token: str


@dataclass(frozen=True)
class ExecuteRequest:
    token: str
    side: Side
    amount: float  # SOL for buys, percent for sells


@dataclass(frozen=True)
class WalletStateRequest:
    pass


@dataclass(frozen=True)
class TokenBalanceRequest:
    token: str


@dataclass(frozen=True)
class CacheStatusRequest:
    pass


Request = Union[PreloadRequest, ExecuteRequest, WalletStateRequest, TokenBalanceRequest, CacheStatusRequest]


def parse_request(message: Dict[str, Any]) -> Request:
    """Build a typed request from a `{"type": ..., ...}` message."""
    if not isinstance(message, dict):
        raise InvalidRequest("request must be an object")
    kind = str(message.get("type", "")).lower()
    if kind == "preload":
        return PreloadRequest(token=_token(message.get("token")))
    if kind in ("buy", "sell", "execute"):
        raw_side = message.get("side", kind)
        try:
            side = Side(str(raw_side).lower())
        except ValueError:
            raise InvalidRequest(f"unknown side: {raw_side}") from None
        return ExecuteRequest(token=_token(message.get("token")), side=side, amount=_amount(message.get("amount")))
    if kind == "wallet_state":
        return WalletStateRequest()
    if kind == "token_balance":
        return TokenBalanceRequest(token=_token(message.get("token")))
    if kind == "cache_status":
        return CacheStatusRequest()
    raise InvalidRequest(f"unknown request type: {kind or '<missing>'}")


def _token(raw: Any) -> str:
    token = str(raw or "").strip()
    if not token:
        raise InvalidRequest("token is required")
    return token


def _amount(raw: Any) -> float:
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f"invalid amount: {raw!r}") from None
    if amount <= 0:
        raise InvalidRequest("amount must be > 0")
    return amount


# ========== Service ==========

class TradeService:
    def __init__(
        self,
        store: CacheStore,
        preloader: Preloader,
        pipeline: TradePipeline,
        oracle: Optional[BalanceOracle],
        signer: Optional[Signer],
        metrics: Optional[SwapMetrics] = None,
        closers: Optional[List[Callable[[], Awaitable[None]]]] = None,
    ) -> None:
        self.store = store
        self.preloader = preloader
        self.pipeline = pipeline
        self.oracle = oracle
        self.signer = signer
        self.metrics = metrics
        self._closers = closers or []

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        metrics: Optional[SwapMetrics] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "TradeService":
        """Wire live Jupiter/Helius/Jito clients and the wallet from settings."""
        wallet = Wallet.from_base58(cfg.private_key, max_age_sec=cfg.artifact_max_age_sec) if cfg.private_key else None
        rpc = HeliusClient(cfg.rpc_url, timeout=cfg.http_timeout, client=client)
        venue = JupiterClient(
            wallet.address if wallet else "",
            base_url=cfg.jupiter_base_url,
            tokens_url=cfg.jupiter_tokens_url,
            api_key=cfg.jupiter_api_key,
            slippage_bps=cfg.slippage_bps,
            priority_fee_lamports=cfg.priority_fee_lamports,
            timeout=cfg.http_timeout,
            client=client,
            fee_estimator=rpc.get_priority_fee if cfg.dynamic_priority_fee else None,
        )
        jito = JitoClient(cfg.jito_bundle_url, timeout=cfg.http_timeout, client=client) if cfg.priority_enabled else None

        store = CacheStore()
        preloader = Preloader(
            store,
            venue,
            rpc,
            wallet,
            PresetBook.from_settings(cfg),
            enabled=cfg.enable_cache,
            refresh_interval=cfg.refresh_interval_sec,
            ttl=cfg.cache_ttl_sec,
            metrics=metrics,
        )
        poller = ConfirmationPoller(rpc, interval=cfg.confirm_poll_interval_sec, timeout=cfg.confirm_timeout_sec)
        breaker = CircuitBreaker(
            CircuitBreakerConfig(error_threshold=cfg.priority_error_threshold, cooldown_sec=cfg.priority_cooldown_sec)
        )
        router = SubmissionRouter(
            rpc,
            poller,
            jito,
            max_retries=cfg.bundle_max_retries,
            backoff_base=cfg.bundle_backoff_base_sec,
            backoff_max=cfg.bundle_backoff_max_sec,
            bundle_poll_interval=cfg.bundle_poll_interval_sec,
            bundle_timeout=cfg.bundle_timeout_sec,
            breaker=breaker,
            metrics=metrics,
        )
        pipeline = TradePipeline(
            store,
            preloader,
            venue,
            rpc,
            wallet,
            router,
            enabled=cfg.enable_cache,
            fresh_threshold=cfg.fresh_threshold_sec,
            drift_pct=cfg.balance_drift_pct,
            locks=ExecutionLocks(enabled=cfg.serialize_executions),
            metrics=metrics,
        )
        closers = [venue.close, rpc.close]
        if jito is not None:
            closers.append(jito.close)
        return cls(store, preloader, pipeline, rpc, wallet, metrics=metrics, closers=closers)

    async def close(self) -> None:
        self.preloader.scheduler.cancel()
        for close in self._closers:
            await close()

    # ========== Operations ==========

    async def preload(self, token: str) -> Envelope:
        try:
            report = await self.preloader.preload(_token(token))
        except Exception as exc:
            return self._fail("preload", token, exc)
        return Envelope.success(report.to_dict())

    async def execute(self, token: str, side: Union[Side, str], amount: float) -> Envelope:
        try:
            token = _token(token)
            try:
                side = Side(side)
            except ValueError:
                raise InvalidRequest(f"unknown side: {side}") from None
            amount = _amount(amount)
            if side is Side.BUY:
                result = await self.pipeline.execute_buy(token, amount)
            else:
                result = await self.pipeline.execute_sell(token, amount)
        except Exception as exc:
            return self._fail("execute", token, exc)
        return Envelope.success(result.signature)

    async def wallet_state(self) -> Envelope:
        if self.signer is None or not self.signer.address:
            return Envelope.failure(NotReady("wallet not configured"))
        address = self.signer.address
        balance = 0.0
        if self.oracle is not None:
            try:
                balance = float(await self.oracle.get_sol_balance(address))
            except Exception as exc:
                log.warning(dumps({"event": "sol_balance_failed", "err": str(exc)}))
        return Envelope.success({"address": address, "sol_balance": balance})

    async def token_balance(self, token: str) -> Envelope:
        try:
            token = _token(token)
            if self.oracle is None or self.signer is None or not self.signer.address:
                raise NotReady("balance oracle or wallet not configured")
            balance = await self.oracle.get_ui_balance(self.signer.address, token)
        except Exception as exc:
            return self._fail("token_balance", token, exc)
        return Envelope.success({"token": token, "balance": float(balance)})

    def cache_status(self) -> Envelope:
        cache = self.store.get()
        if cache is None:
            return Envelope.success({"cached": False, "tracked_token": self.store.tracked_token})
        now = self.store.now()
        status = cache.to_dict(now)
        status.update(
            cached=True,
            valid=cache.is_valid(now, self.preloader.scheduler.ttl),
            fresh=cache.is_fresh(now, self.pipeline.fresh_threshold),
            refreshing=self.preloader.scheduler.active,
        )
        return Envelope.success(status)

    # ========== Dispatch ==========

    async def handle(self, request: Request) -> Envelope:
        if isinstance(request, PreloadRequest):
            return await self.preload(request.token)
        if isinstance(request, ExecuteRequest):
            return await self.execute(request.token, request.side, request.amount)
        if isinstance(request, WalletStateRequest):
            return await self.wallet_state()
        if isinstance(request, TokenBalanceRequest):
            return await self.token_balance(request.token)
        if isinstance(request, CacheStatusRequest):
            return self.cache_status()
        return Envelope.failure(InvalidRequest(f"unsupported request: {type(request).__name__}"))

    async def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        try:
            request = parse_request(message)
        except InvalidRequest as exc:
            return Envelope.failure(exc).to_dict()
        env = await self.handle(request)
        return env.to_dict()

    def _fail(self, op: str, token: Any, exc: BaseException) -> Envelope:
        if isinstance(exc, TradeError):
            log.info(dumps({"event": f"{op}_error", "token": token, "kind": exc.kind, "err": exc.message}))
        else:
            log.exception(dumps({"event": f"{op}_internal_error", "token": token, "err": str(exc)}))
        return Envelope.failure(exc)
