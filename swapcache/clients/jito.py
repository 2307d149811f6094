"""
Jito block-engine client (priority channel).

`send` makes a single sendBundle attempt and reports rate limiting as the
UNAVAILABLE sentinel instead of raising, so the submission router can decide
between backing off and falling back. Every other failure is a hard
SubmissionFailed.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import httpx

from swapcache.core.errors import SubmissionFailed
from swapcache.core.json_utils import dumps, loads
from swapcache.core.models import UNAVAILABLE, BundleStatus, BundleSubmission, _Unavailable
from swapcache.infra.http import HttpClient, RpcError

log = logging.getLogger("swapcache")

MAX_BUNDLE_SIZE = 5
RATE_LIMIT_CODE = -32097

_STATUS_MAP = {
    "landed": BundleStatus.LANDED,
    "failed": BundleStatus.FAILED,
    "invalid": BundleStatus.FAILED,
    "pending": BundleStatus.PENDING,
}


def _is_rate_limit(error: dict) -> bool:
    message = str(error.get("message", "")).lower()
    return error.get("code") == RATE_LIMIT_CODE or "rate limit" in message


class JitoClient:
    def __init__(
        self,
        bundle_url: str = "https://mainnet.block-engine.jito.wtf/api/v1/bundles",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bundle_url = bundle_url
        self._http = HttpClient(timeout=timeout, client=client)
        self.bundles_submitted = 0
        self.bundles_landed = 0

    async def close(self) -> None:
        await self._http.close()

    async def send(self, payloads: Sequence[str]) -> Union[BundleSubmission, _Unavailable]:
        if not payloads:
            raise SubmissionFailed("bundle must contain at least one transaction")
        if len(payloads) > MAX_BUNDLE_SIZE:
            raise SubmissionFailed(f"bundle holds at most {MAX_BUNDLE_SIZE} transactions")

        body = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [list(payloads), {"encoding": "base64"}],
        }
        try:
            resp = await self._http.client.post(self.bundle_url, json=body)
        except httpx.HTTPError as exc:
            raise SubmissionFailed(f"Jito bundle send failed: {exc}", cause=exc) from exc

        if resp.status_code == 429:
            log.warning(dumps({"event": "bundle_rate_limited", "status": 429}))
            return UNAVAILABLE
        if resp.status_code >= 400:
            raise SubmissionFailed(f"Jito bundle send failed: {resp.status_code} {resp.text[:200]}")

        try:
            data = loads(resp.content)
        except ValueError as exc:
            raise SubmissionFailed("Jito bundle send returned invalid JSON", cause=exc) from exc

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            if isinstance(error, dict) and _is_rate_limit(error):
                log.warning(dumps({"event": "bundle_rate_limited", "code": error.get("code")}))
                return UNAVAILABLE
            msg = error.get("message") if isinstance(error, dict) else error
            raise SubmissionFailed(f"Jito bundle rejected: {msg}")

        bundle_id = data.get("result") if isinstance(data, dict) else None
        if not bundle_id:
            raise SubmissionFailed("Jito bundle send returned no bundle id")
        self.bundles_submitted += 1
        return BundleSubmission(id=str(bundle_id))

    async def poll(self, bundle_id: str) -> BundleSubmission:
        result = await self._http.rpc(self.bundle_url, "getInflightBundleStatuses", [[bundle_id]])
        values = (result or {}).get("value") or []
        entry = values[0] if values else None
        if not entry:
            return BundleSubmission(id=bundle_id, status=BundleStatus.PENDING)

        raw_status = str(entry.get("status", "")).lower()
        status = _STATUS_MAP.get(raw_status, BundleStatus.PENDING)
        submission = BundleSubmission(id=bundle_id, status=status)
        if status is BundleStatus.FAILED:
            submission.error = f"bundle {raw_status}"
        elif status is BundleStatus.LANDED:
            self.bundles_landed += 1
            submission.result_artifact_ids = await self._landed_transactions(bundle_id)
        return submission

    async def _landed_transactions(self, bundle_id: str) -> Optional[list]:
        try:
            result = await self._http.rpc(self.bundle_url, "getBundleStatuses", [[bundle_id]])
        except (RpcError, httpx.HTTPError) as exc:
            log.info(dumps({"event": "bundle_tx_lookup_failed", "bundle_id": bundle_id, "err": str(exc)}))
            return None
        values = (result or {}).get("value") or []
        if values and isinstance(values[0], dict):
            txs = values[0].get("transactions")
            if isinstance(txs, list):
                return [str(t) for t in txs]
        return None
