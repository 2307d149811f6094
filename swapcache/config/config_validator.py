"""
Startup checks on top of Settings._validate.

Settings.load already refuses settings that cannot work at all. This module
looks for settings that work but are probably a mistake: timings outside a
sane range, a refresh that runs more often than it helps, no signer key.
Errors block startup; warnings are logged and startup continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ValidationSeverity(Enum):
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logged, startup continues
    INFO = auto()


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.get_errors()

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    """Collects ValidationIssues for a Settings instance."""

    # (min, max) accepted values; outside is an error
    RANGES: Dict[str, Tuple[float, float]] = {
        "cache_ttl_sec": (1.0, 120.0),
        "fresh_threshold_sec": (0.1, 60.0),
        "refresh_interval_sec": (0.5, 120.0),
        "artifact_max_age_sec": (1.0, 150.0),
        "confirm_timeout_sec": (1.0, 300.0),
        "confirm_poll_interval_sec": (0.05, 10.0),
        "bundle_timeout_sec": (1.0, 300.0),
        "bundle_poll_interval_sec": (0.05, 10.0),
        "bundle_max_retries": (1, 10),
        "http_timeout": (0.5, 120.0),
        "slippage_bps": (0, 10000),
        "priority_fee_lamports": (0, 100_000_000),
    }

    LARGE_BUY_SOL = 50.0
    MAX_PRESETS = 12

    def validate(self, cfg) -> ValidationResult:
        result = ValidationResult()
        for check in (self._endpoints, self._ranges, self._cache_timing, self._presets, self._credentials):
            result.issues.extend(check(cfg))
        return result

    def _endpoints(self, cfg) -> List[ValidationIssue]:
        issues = []
        for name in ("rpc_url", "jupiter_base_url"):
            value = getattr(cfg, name, None)
            if not value or not str(value).strip():
                issues.append(ValidationIssue(name, f"{name} is empty", ValidationSeverity.ERROR))
            elif not str(value).startswith(("http://", "https://")):
                issues.append(ValidationIssue(
                    name, f"{name} is not an http(s) URL", ValidationSeverity.ERROR, value=value,
                ))
        if not getattr(cfg, "jito_bundle_url", None):
            issues.append(ValidationIssue(
                "jito_bundle_url",
                "Priority channel disabled; every submission goes through the RPC",
                ValidationSeverity.INFO,
            ))
        return issues

    def _ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for name, (low, high) in self.RANGES.items():
            value = getattr(cfg, name, None)
            if value is None:
                continue
            if not low <= float(value) <= high:
                issues.append(ValidationIssue(
                    name,
                    f"{name}={value} outside [{low}, {high}]",
                    ValidationSeverity.ERROR,
                    value=value,
                    suggestion=f"Use a value between {low} and {high}",
                ))
        return issues

    def _cache_timing(self, cfg) -> List[ValidationIssue]:
        ttl = cfg.cache_ttl_sec
        fresh = cfg.fresh_threshold_sec
        refresh = cfg.refresh_interval_sec
        issues = []
        if refresh < fresh:
            issues.append(ValidationIssue(
                "refresh_interval_sec",
                f"Refresh every {refresh}s rebuilds caches that are still fresh (threshold {fresh}s)",
                ValidationSeverity.WARNING,
                value=refresh,
                suggestion="Refresh between the freshness threshold and the TTL",
            ))
        if ttl > cfg.artifact_max_age_sec:
            issues.append(ValidationIssue(
                "cache_ttl_sec",
                f"Cache TTL {ttl}s exceeds the signer's artifact age limit {cfg.artifact_max_age_sec}s",
                ValidationSeverity.WARNING,
                value=ttl,
                suggestion="Cached artifacts past the age limit will always need a rebuild",
            ))
        return issues

    def _presets(self, cfg) -> List[ValidationIssue]:
        issues = []
        buys = list(cfg.buy_presets)
        if buys and max(buys) > self.LARGE_BUY_SOL:
            issues.append(ValidationIssue(
                "buy_presets", f"Buy preset of {max(buys)} SOL", ValidationSeverity.WARNING, value=max(buys),
            ))
        if len(buys) + len(cfg.sell_presets) > self.MAX_PRESETS:
            issues.append(ValidationIssue(
                "sell_presets",
                f"{len(buys) + len(cfg.sell_presets)} presets means as many venue calls per refresh",
                ValidationSeverity.WARNING,
                suggestion=f"Keep at most {self.MAX_PRESETS} presets",
            ))
        return issues

    def _credentials(self, cfg) -> List[ValidationIssue]:
        if getattr(cfg, "private_key", None):
            return []
        return [ValidationIssue(
            "private_key",
            "No signing key; preload works but buy/sell will fail with not_ready",
            ValidationSeverity.WARNING,
            suggestion="Set SWAP_PRIVATE_KEY",
        )]


def validate_and_log(cfg, logger_instance: Optional[logging.Logger] = None) -> bool:
    """Validate `cfg`, log every error and warning, return True when startup may continue."""
    log = logger_instance or logger
    result = ConfigValidator().validate(cfg)

    for issue in result.get_errors():
        hint = f" (suggestion: {issue.suggestion})" if issue.suggestion else ""
        log.error(f"CONFIG ERROR: {issue.message}{hint}")
    for issue in result.get_warnings():
        hint = f" (suggestion: {issue.suggestion})" if issue.suggestion else ""
        log.warning(f"CONFIG WARNING: {issue.message}{hint}")

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")
    return result.valid
