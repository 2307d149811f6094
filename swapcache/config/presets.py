"""Load per-token preset overrides from YAML.

Optional file path via env `SWAP_PRESETS_FILE`, default `configs/presets.yaml`.
The file maps a token mint to `buy_presets` / `sell_presets` lists; tokens
without an entry use the global presets from Settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass(frozen=True)
class TokenPresets:
    buy: List[float]
    sell: List[float]


def load_preset_overrides(path: str | None = None) -> Dict[str, Dict[str, Any]]:
    if path is None:
        path = os.getenv("SWAP_PRESETS_FILE", "configs/presets.yaml")
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        return {}
    if isinstance(data, dict):
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}
    return {}


class PresetBook:
    """Resolves the buy/sell presets to precompute for a token."""

    def __init__(
        self,
        buy: List[float],
        sell: List[float],
        overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> None:
        self._default = TokenPresets(list(buy), list(sell))
        self._overrides = overrides or {}

    @classmethod
    def from_settings(cls, cfg) -> "PresetBook":
        return cls(cfg.buy_presets, cfg.sell_presets, load_preset_overrides(cfg.presets_file))

    def for_token(self, token: str) -> TokenPresets:
        override = self._overrides.get(token)
        if not override:
            return self._default
        buy = _float_list(override.get("buy_presets"), self._default.buy)
        sell = [p for p in _float_list(override.get("sell_presets"), self._default.sell) if 0 < p <= 100]
        return TokenPresets(buy=[a for a in buy if a > 0], sell=sell)


def _float_list(raw: Any, default: List[float]) -> List[float]:
    if not isinstance(raw, list):
        return list(default)
    out: List[float] = []
    for v in raw:
        try:
            out.append(float(v))
        except (TypeError, ValueError):
            continue
    return out
