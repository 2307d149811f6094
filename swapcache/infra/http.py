"""
Shared async HTTP plumbing for the venue, RPC and bundle clients.

A thin wrapper around httpx.AsyncClient that adds JSON-RPC framing and
bounded, jittered retries for transport failures on idempotent reads.
"""

from __future__ import annotations

import asyncio
import itertools
import random
from typing import Any, Dict, Optional

import httpx

from swapcache.core.json_utils import loads


class RpcError(Exception):
    """JSON-RPC level error (HTTP 200 with an `error` member)."""

    def __init__(self, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"rpc error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class HttpClient:
    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        retries: int = 2,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)
        self._retries = retries
        self._ids = itertools.count(1)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None, retry: bool = True) -> Any:
        async def _do() -> Any:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return loads(resp.content)

        return await self._call(_do, retries=self._retries if retry else 0)

    async def post_json(self, url: str, body: Any, retry: bool = False) -> Any:
        async def _do() -> Any:
            resp = await self._client.post(url, json=body)
            resp.raise_for_status()
            return loads(resp.content)

        return await self._call(_do, retries=self._retries if retry else 0)

    async def rpc(self, url: str, method: str, params: Any = None, retry: bool = True) -> Any:
        """POST a JSON-RPC 2.0 call and return its `result`, raising RpcError on `error`."""
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params if params is not None else []}
        data = await self.post_json(url, body, retry=retry)
        if not isinstance(data, dict):
            raise RpcError(None, f"{method} returned non-object payload")
        err = data.get("error")
        if err:
            if isinstance(err, dict):
                raise RpcError(err.get("code"), str(err.get("message", err)), err.get("data"))
            raise RpcError(None, str(err))
        return data.get("result")

    async def _call(self, fn, retries: int) -> Any:
        backoff = 0.2
        for attempt in range(retries + 1):
            try:
                return await fn()
            except httpx.TransportError:
                if attempt >= retries:
                    raise
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
