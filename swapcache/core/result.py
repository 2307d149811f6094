"""
Uniform result envelope returned across the service boundary.

    {"ok": true, "value": ...}
    {"ok": false, "error_kind": "...", "message": "..."}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from swapcache.core.errors import TradeError


@dataclass(frozen=True)
class Envelope:
    ok: bool
    value: Any = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, value: Any) -> "Envelope":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: BaseException) -> "Envelope":
        if isinstance(exc, TradeError):
            data = exc.to_dict()
            extra = {k: v for k, v in data.items() if k not in ("error_kind", "message")}
            return cls(ok=False, error_kind=exc.kind, message=exc.message, detail=extra or None)
        return cls(ok=False, error_kind="internal", message=str(exc) or type(exc).__name__)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "value": self.value}
        out: Dict[str, Any] = {"ok": False, "error_kind": self.error_kind, "message": self.message}
        if self.detail:
            out.update(self.detail)
        return out
