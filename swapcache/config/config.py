"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from dotenv import load_dotenv

from swapcache.core.json_utils import dumps

load_dotenv()

HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _float_list_env(key: str, default: List[float]) -> List[float]:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return list(default)
    return [float(x) for x in raw.split(",") if x.strip()]


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    helius_api_key: str | None
    jupiter_base_url: str
    jupiter_tokens_url: str
    jupiter_api_key: str | None
    jito_bundle_url: str | None
    private_key: str | None
    slippage_bps: int
    priority_fee_lamports: int
    dynamic_priority_fee: bool
    buy_presets: List[float]
    sell_presets: List[float]
    enable_cache: bool
    # Cache timing (seconds)
    cache_ttl_sec: float
    fresh_threshold_sec: float
    refresh_interval_sec: float
    balance_drift_pct: Decimal
    artifact_max_age_sec: float
    # Submission / confirmation
    confirm_timeout_sec: float
    confirm_poll_interval_sec: float
    bundle_timeout_sec: float
    bundle_poll_interval_sec: float
    bundle_max_retries: int
    bundle_backoff_base_sec: float
    bundle_backoff_max_sec: float
    priority_error_threshold: int
    priority_cooldown_sec: float
    serialize_executions: bool
    http_timeout: float
    # Ops
    presets_file: str
    log_file: str | None
    metrics_port: int

    def dump(self) -> dict:
        """Return a dict of settings for sanity checks/logging, secrets masked."""
        data = self.__dict__.copy()
        for key in ("private_key", "helius_api_key", "jupiter_api_key"):
            if data.get(key):
                data[key] = "***"
        if self.helius_api_key and data.get("rpc_url"):
            data["rpc_url"] = data["rpc_url"].replace(self.helius_api_key, "***")
        data["balance_drift_pct"] = str(self.balance_drift_pct)
        return data

    @property
    def priority_enabled(self) -> bool:
        return bool(self.jito_bundle_url)

    @staticmethod
    def _rpc_url() -> str:
        explicit = os.getenv("SWAP_RPC_URL")
        if explicit:
            return explicit
        key = os.getenv("SWAP_HELIUS_API_KEY")
        if key:
            return HELIUS_RPC_TEMPLATE.format(key=key)
        return "https://api.mainnet-beta.solana.com"

    @classmethod
    def load(cls) -> "Settings":
        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return float(raw)

        jito_enabled = env_bool("SWAP_JITO_ENABLED", True)
        cfg = cls(
            rpc_url=cls._rpc_url(),
            helius_api_key=os.getenv("SWAP_HELIUS_API_KEY"),
            jupiter_base_url=os.getenv("SWAP_JUPITER_BASE_URL", "https://quote-api.jup.ag/v6"),
            jupiter_tokens_url=os.getenv("SWAP_JUPITER_TOKENS_URL", "https://tokens.jup.ag"),
            jupiter_api_key=os.getenv("SWAP_JUPITER_API_KEY") or None,
            jito_bundle_url=(
                os.getenv("SWAP_JITO_BUNDLE_URL", "https://mainnet.block-engine.jito.wtf/api/v1/bundles")
                if jito_enabled
                else None
            ),
            private_key=os.getenv("SWAP_PRIVATE_KEY"),
            slippage_bps=_int_env("SWAP_SLIPPAGE_BPS", 100),
            priority_fee_lamports=_int_env("SWAP_PRIORITY_FEE_LAMPORTS", 100000),
            dynamic_priority_fee=env_bool("SWAP_DYNAMIC_PRIORITY_FEE", True),
            buy_presets=_float_list_env("SWAP_BUY_PRESETS", [0.36, 0.56, 0.86, 1.06]),
            sell_presets=_float_list_env("SWAP_SELL_PRESETS", [10, 30, 50, 100]),
            enable_cache=env_bool("SWAP_ENABLE_CACHE", True),
            cache_ttl_sec=_float_env("SWAP_CACHE_TTL_SEC", 10.0),
            fresh_threshold_sec=_float_env("SWAP_FRESH_THRESHOLD_SEC", 5.0),
            refresh_interval_sec=_float_env("SWAP_REFRESH_INTERVAL_SEC", 8.0),
            balance_drift_pct=Decimal(os.getenv("SWAP_BALANCE_DRIFT_PCT", "5")),
            artifact_max_age_sec=_float_env("SWAP_ARTIFACT_MAX_AGE_SEC", 60.0),
            confirm_timeout_sec=_float_env("SWAP_CONFIRM_TIMEOUT_SEC", 30.0),
            confirm_poll_interval_sec=_float_env("SWAP_CONFIRM_POLL_SEC", 0.5),
            bundle_timeout_sec=_float_env("SWAP_BUNDLE_TIMEOUT_SEC", 30.0),
            bundle_poll_interval_sec=_float_env("SWAP_BUNDLE_POLL_SEC", 0.5),
            bundle_max_retries=_int_env("SWAP_BUNDLE_MAX_RETRIES", 3),
            bundle_backoff_base_sec=_float_env("SWAP_BUNDLE_BACKOFF_BASE_SEC", 1.0),
            bundle_backoff_max_sec=_float_env("SWAP_BUNDLE_BACKOFF_MAX_SEC", 5.0),
            priority_error_threshold=_int_env("SWAP_PRIORITY_ERROR_THRESHOLD", 3),
            priority_cooldown_sec=_float_env("SWAP_PRIORITY_COOLDOWN_SEC", 30.0),
            serialize_executions=env_bool("SWAP_SERIALIZE_EXECUTIONS", True),
            http_timeout=_float_env("SWAP_HTTP_TIMEOUT", 10.0),
            presets_file=os.getenv("SWAP_PRESETS_FILE", "configs/presets.yaml"),
            log_file=os.getenv("SWAP_LOG_FILE") or None,
            metrics_port=_int_env("SWAP_METRICS_PORT", 0),
        )
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def _validate(self) -> None:
        if self.cache_ttl_sec <= 0 or self.fresh_threshold_sec <= 0:
            raise ValueError("Cache TTL and freshness threshold must be > 0")
        if self.fresh_threshold_sec >= self.cache_ttl_sec:
            raise ValueError("SWAP_FRESH_THRESHOLD_SEC must be < SWAP_CACHE_TTL_SEC")
        if self.refresh_interval_sec <= 0:
            raise ValueError("SWAP_REFRESH_INTERVAL_SEC must be > 0")
        # the rebuild has to land before the cache it replaces expires
        if self.refresh_interval_sec >= self.cache_ttl_sec:
            raise ValueError("SWAP_REFRESH_INTERVAL_SEC must be < SWAP_CACHE_TTL_SEC")
        if not self.buy_presets:
            raise ValueError("SWAP_BUY_PRESETS must not be empty")
        if any(a <= 0 for a in self.buy_presets):
            raise ValueError("SWAP_BUY_PRESETS entries must be > 0")
        if any(p <= 0 or p > 100 for p in self.sell_presets):
            raise ValueError("SWAP_SELL_PRESETS entries must be in (0, 100]")
        if self.balance_drift_pct <= 0:
            raise ValueError("SWAP_BALANCE_DRIFT_PCT must be > 0")
        if self.confirm_timeout_sec <= 0 or self.confirm_poll_interval_sec <= 0:
            raise ValueError("Confirmation timeout and poll interval must be > 0")
        if self.bundle_timeout_sec <= 0 or self.bundle_poll_interval_sec <= 0:
            raise ValueError("Bundle timeout and poll interval must be > 0")
        if self.bundle_max_retries < 1:
            raise ValueError("SWAP_BUNDLE_MAX_RETRIES must be >= 1")
        if self.slippage_bps < 0 or self.slippage_bps > 10000:
            raise ValueError("SWAP_SLIPPAGE_BPS must be within [0, 10000]")

        if self.slippage_bps > 2500:
            logging.getLogger("swapcache").warning(
                f"WARNING: SWAP_SLIPPAGE_BPS={self.slippage_bps} allows more than 25% slippage."
            )


def _sanity_check(cfg: Settings) -> None:
    """
    Log the cache timing settings once at startup so overrides are obvious.
    """
    logger = logging.getLogger("swapcache")
    payload = {
        "event": "config_loaded",
        "cache_ttl_sec": cfg.cache_ttl_sec,
        "fresh_threshold_sec": cfg.fresh_threshold_sec,
        "refresh_interval_sec": cfg.refresh_interval_sec,
        "buy_presets": cfg.buy_presets,
        "sell_presets": cfg.sell_presets,
        "priority_channel": cfg.priority_enabled,
    }
    logger.info(dumps(payload))
