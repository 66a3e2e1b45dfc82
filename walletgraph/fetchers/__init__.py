"""
Fetcher layer for walletgraph.

Provides a unified factory function `get_fetcher()` that returns the
explorer client for a Starknet network. All clients implement ExplorerClient.

Usage:
    from walletgraph.fetchers import get_fetcher
    client = get_fetcher("sepolia", config)
    page = await client.get_transactions(address, page=1, page_size=20)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from walletgraph.config import WalletGraphConfig
    from walletgraph.models import TransactionDetail, TransactionPage

SUPPORTED_NETWORKS = {"sepolia", "mainnet"}


@runtime_checkable
class ExplorerClient(Protocol):
    """
    Protocol that all explorer clients must implement.

    Clients are responsible for:
    - Fetching raw transaction lists and details from the explorer API
    - Normalizing them into Transaction / TransactionDetail
    - Validating addresses (without API calls)

    Clients are NOT responsible for caching, dedup or graph shape; that is
    the session's job.
    """

    async def get_transactions(self, address: str, page: int, page_size: int) -> TransactionPage:
        """
        Fetch one page of the address's transaction list.

        Raises:
            RateLimitError: API rate limit exceeded
            NetworkError: Connection or timeout issue
            APIError: Upstream API returned an error or malformed data
        """
        ...

    async def get_transaction_detail(self, tx_hash: str) -> TransactionDetail | None:
        """
        Fetch token transfers and fee breakdown for one transaction.

        Returns None when the explorer has no usable detail.
        """
        ...

    async def validate_address(self, address: str) -> bool:
        """
        Validate address format.

        Does NOT require an API call — pure local validation.
        """
        ...

    async def close(self) -> None:
        ...


def get_fetcher(network: str, config: WalletGraphConfig) -> ExplorerClient:
    """
    Factory: return the explorer client for the given network.

    Args:
        network: "sepolia" or "mainnet"
        config: WalletGraphConfig with API settings; a non-empty
                `api.base_url` overrides the network's default URL.

    Raises:
        ValueError: Unknown network
    """
    network = network.lower()
    if network not in SUPPORTED_NETWORKS:
        raise ValueError(
            f"Unsupported network: {network!r}. Supported: {sorted(SUPPORTED_NETWORKS)}"
        )

    from walletgraph.fetchers.voyager import VOYAGER_MAINNET, VOYAGER_SEPOLIA, VoyagerClient

    base_url = config.api.base_url or (
        VOYAGER_MAINNET if network == "mainnet" else VOYAGER_SEPOLIA
    )
    return VoyagerClient(
        base_url=base_url,
        api_key=config.api.api_key,
        timeout=config.api.timeout_seconds,
        rate_limit=config.api.rate_limit_per_second,
    )
