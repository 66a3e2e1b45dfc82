"""
Starknet fetcher — Voyager explorer API client.

Two endpoints are used:
  GET {base}/txns?to=<address>&ps=<page_size>&p=<page>   transaction list
  GET {base}/txn/<hash>                                   transaction detail

Design decisions:
- Uses async httpx for all HTTP calls.
- Implements token bucket rate limiting (5 req/sec by default).
- List failures raise (the session turns them into an advisory).
- Detail failures at the HTTP level return None: "no detail available" is a
  normal outcome, not an error. Transport errors still raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from walletgraph.exceptions import (
    APIError,
    ConnectionFailedError,
    InvalidAPIKeyError,
    NetworkError,
    NetworkTimeoutError,
    RateLimitError,
)
from walletgraph.models import TransactionDetail, TransactionPage
from walletgraph.normalize import is_valid_address, normalize_detail, normalize_transactions

logger = logging.getLogger(__name__)

# Voyager API base URLs per network
VOYAGER_SEPOLIA = "https://sepolia.voyager.online/api"
VOYAGER_MAINNET = "https://voyager.online/api"


class _TokenBucket:
    """Simple token bucket rate limiter."""

    def __init__(self, calls: int, period: float) -> None:
        self._calls = calls
        self._period = period
        self._tokens: float = float(calls)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            # Refill tokens proportional to elapsed time
            refill = (elapsed / self._period) * self._calls
            self._tokens = min(self._calls, self._tokens + refill)
            self._last_refill = now

            if self._tokens < 1:
                wait = (1 - self._tokens) * (self._period / self._calls)
                await asyncio.sleep(wait)
                self._tokens = 0
            else:
                self._tokens -= 1


class VoyagerClient:
    """
    Async Voyager API client.

    Fetches paginated transaction lists and per-transaction receipts.
    Usable as an async context manager.
    """

    def __init__(
        self,
        base_url: str = VOYAGER_SEPOLIA,
        api_key: str = "",
        timeout: float = 30.0,
        rate_limit: int = 5,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)
        self._rate_limiter = _TokenBucket(rate_limit, 1.0)

    async def __aenter__(self) -> VoyagerClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def get_transactions(self, address: str, page: int, page_size: int) -> TransactionPage:
        """
        Fetch one page of transactions sent to `address`.

        Items come back in explorer order; callers sort.

        Raises:
            RateLimitError: HTTP 429
            InvalidAPIKeyError: HTTP 401/403
            APIError: any other non-2xx status or a malformed body
            NetworkTimeoutError / ConnectionFailedError: transport failures
        """
        resp = await self._get(
            f"{self.base_url}/txns",
            params={"to": address, "ps": page_size, "p": page},
        )
        if resp.status_code == 429:
            raise RateLimitError("Voyager rate limit exceeded", retry_after=60)
        if resp.status_code in (401, 403):
            raise InvalidAPIKeyError("Voyager rejected the API key")
        if resp.status_code >= 400:
            raise APIError(
                f"Voyager returned HTTP {resp.status_code} for transaction list",
                details={"address": address, "page": page, "status": resp.status_code},
            )

        data = self._json(resp)
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise APIError(
                "Voyager returned a malformed transaction list",
                details={"address": address, "page": page},
            )

        items = normalize_transactions(data["items"])
        logger.debug("Fetched %d transactions for %s (page %d)", len(items), address, page)
        return TransactionPage(items=items, last_page=data.get("lastPage") or 1)

    async def get_transaction_detail(self, tx_hash: str) -> TransactionDetail | None:
        """Fetch receipt detail for one transaction. None if unavailable."""
        resp = await self._get(f"{self.base_url}/txn/{tx_hash}")
        if resp.status_code >= 400:
            logger.warning("No detail for %s: HTTP %d", tx_hash, resp.status_code)
            return None
        try:
            data = self._json(resp)
        except APIError:
            logger.warning("No detail for %s: malformed body", tx_hash)
            return None
        return normalize_detail(data, tx_hash)

    async def validate_address(self, address: str) -> bool:
        """Validate Starknet address format. No API call required."""
        return is_valid_address(address)

    async def close(self) -> None:
        await self._client.aclose()

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        await self._rate_limiter.acquire()
        try:
            return await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"Voyager timeout: {e}") from e
        except httpx.ConnectError as e:
            raise ConnectionFailedError(f"Cannot connect to Voyager: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Voyager request failed: {e}") from e

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise APIError(f"Voyager returned invalid JSON: {e}") from e
