"""
Exploration session: the single owner of all graph state.

A GraphSession holds the current transaction page, both caches, the
expansion store and the most recent graph. Node activations and page
changes are its only inputs; after every mutation (toggle, fetch start,
cache fill, fetch completion, page change) it synchronously rebuilds the
tree from fresh snapshots and hands it to `on_render`.

Everything runs on one asyncio event loop. Fetches suspend the handler
that started them but nothing else, so other activations can interleave;
the in-flight markers in ExpansionStateStore are the only interlock
against duplicate fetches. Nothing is cancellable and no timeout is
applied here: a fetch that never returns keeps its marker set.

Failure handling:
- list fetch fails → `error` advisory, empty page, fallback page count
- opening page past the last page → `error` advisory, page 1 shown
- detail/history fetch fails → logged, cache left empty, retried on the
  next expansion
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from walletgraph.cache import (
    FETCH_ADDRESS,
    FETCH_TRANSACTION,
    AddressHistoryCache,
    ExpansionStateStore,
    TransactionDetailCache,
)
from walletgraph.config import WalletGraphConfig
from walletgraph.exceptions import WalletGraphError
from walletgraph.fetchers import ExplorerClient
from walletgraph.graph import build_graph
from walletgraph.history import fetch_transactions_between
from walletgraph.models import TokenTransfer, Transaction, WalletNode
from walletgraph.normalize import compute_total_pages, is_transfer, sort_by_timestamp_desc
from walletgraph.resolver import resolve_counterparty

logger = logging.getLogger(__name__)

LIST_FAILURE_ADVISORY = (
    "Failed to fetch transactions from the Voyager API. Showing an empty graph."
)
PAGE_OUT_OF_RANGE_ADVISORY = "Page {page} is out of range; showing page 1 of {total}."


@dataclass
class GraphSettings:
    """Per-session paging and expansion limits."""

    page_size: int = 20
    history_limit: int = 10
    max_pages: int = 100
    fallback_pages: int = 5
    prefetch_details: bool = True

    @classmethod
    def from_config(cls, config: WalletGraphConfig) -> GraphSettings:
        return cls(
            page_size=config.graph.page_size,
            history_limit=config.graph.history_limit,
            max_pages=config.graph.max_pages,
            fallback_pages=config.graph.fallback_pages,
            prefetch_details=config.graph.prefetch_details,
        )


class GraphSession:
    """Session-scoped controller for one explored wallet."""

    def __init__(
        self,
        root_address: str,
        client: ExplorerClient,
        settings: GraphSettings | None = None,
        on_render: Callable[[WalletNode], Any] | None = None,
    ) -> None:
        self.root_address = root_address
        self.client = client
        self.settings = settings or GraphSettings()
        self.on_render = on_render

        self.transactions: list[Transaction] = []
        self.current_page = 1
        self.total_pages = 1
        self.is_loading = False
        self.error = ""

        self.details = TransactionDetailCache()
        self.histories = AddressHistoryCache()
        self.expansion = ExpansionStateStore()

        self.selected_transaction: Transaction | None = None
        self.selected_transfer: TokenTransfer | None = None

        self.renders = 0
        self.graph: WalletNode = self._build()

    # ── Inbound handlers ──────────────────────────────────────────────────────

    async def start(self, page: int = 1) -> None:
        """
        Load the opening page, the first unless another is asked for.

        A page past the explorer's last page falls back to page 1 and leaves
        an advisory in `error`.
        """
        if page >= 1 and await self._load_page(page):
            return
        logger.warning(
            "Page %d requested for %s but only %d available; showing page 1",
            page, self.root_address, self.total_pages,
        )
        await self._load_page(1)
        if not self.error:
            self.error = PAGE_OUT_OF_RANGE_ADVISORY.format(page=page, total=self.total_pages)
            self.rebuild()

    async def on_page_change(self, page: int) -> bool:
        """
        Switch to another page of the wallet's transactions.

        Ignored (returns False) for out-of-range pages, the current page, or
        while another page is loading. Caches survive page changes.
        """
        if page < 1 or page > self.total_pages:
            return False
        if page == self.current_page or self.is_loading:
            return False
        return await self._load_page(page)

    async def on_transaction_node_activated(self, tx_hash: str) -> None:
        """Toggle a transaction; fetch its detail on first expansion."""
        self.selected_transaction = self.find_transaction(tx_hash)
        expanded = self.expansion.toggle_transaction(tx_hash)
        self.rebuild()
        if expanded:
            await self._fetch_detail(tx_hash)

    async def on_address_node_activated(self, address: str) -> None:
        """Toggle an address; fetch its counterparty history on first expansion."""
        expanded = self.expansion.toggle_address(address)
        self.rebuild()
        if expanded:
            await self._fetch_history(address)

    def on_token_transfer_node_activated(self, transfer: TokenTransfer) -> None:
        """Select a token transfer for display."""
        self.selected_transfer = transfer
        self.rebuild()

    # ── Graph ─────────────────────────────────────────────────────────────────

    def rebuild(self) -> WalletNode:
        """Rebuild the tree from the current state and push it to the render sink."""
        self.graph = self._build()
        self.renders += 1
        if self.on_render is not None:
            self.on_render(self.graph)
        return self.graph

    def find_transaction(self, tx_hash: str) -> Transaction | None:
        """Look a hash up in the current page, then in cached histories."""
        for tx in self.transactions:
            if tx.tx_hash == tx_hash:
                return tx
        for txns in self.histories.snapshot().values():
            for tx in txns:
                if tx.tx_hash == tx_hash:
                    return tx
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the session view for output."""
        return {
            "address": self.root_address,
            "page": self.current_page,
            "total_pages": self.total_pages,
            "transaction_count": len(self.transactions),
            "error": self.error or None,
            "graph": self.graph.to_dict(),
        }

    def _build(self) -> WalletNode:
        # Snapshots are taken here, after the mutation that triggered the build
        return build_graph(
            self.root_address,
            self.transactions,
            self.expansion.snapshot(),
            self.details.snapshot(),
            self.histories.snapshot(),
        )

    # ── Fetching ──────────────────────────────────────────────────────────────

    async def _load_page(self, page: int) -> bool:
        """
        Fetch `page` and make it current.

        Returns False when the explorer reports fewer pages than `page`; only
        the page count is updated then. A list failure still counts as
        loaded (the fallback view replaces the page).
        """
        self.is_loading = True
        self.error = ""
        try:
            result = await self.client.get_transactions(
                self.root_address, page=page, page_size=self.settings.page_size
            )
        except WalletGraphError as e:
            logger.warning("Transaction list fetch for %s failed: %s", self.root_address, e)
            self.error = LIST_FAILURE_ADVISORY
            self.transactions = []
            self.total_pages = self.settings.fallback_pages
            self.current_page = 1
        else:
            self.total_pages = compute_total_pages(result.last_page, self.settings.max_pages)
            if page > self.total_pages:
                return False
            txns = sort_by_timestamp_desc(result.items)[: self.settings.page_size]
            if self.settings.prefetch_details:
                await self._prefetch_details(txns)
            self.transactions = txns
            self.current_page = page
            logger.info(
                "Loaded page %d/%d for %s (%d transactions)",
                page, self.total_pages, self.root_address, len(txns),
            )
        finally:
            self.is_loading = False
            self.rebuild()
        return True

    async def _prefetch_details(self, txns: list[Transaction]) -> None:
        """Fetch details up front for transfer-tagged transactions."""
        for tx in txns:
            if is_transfer(tx):
                await self._fetch_detail(tx.tx_hash)

    async def _fetch_detail(self, tx_hash: str) -> None:
        if self.details.has(tx_hash):
            return
        if not self.expansion.mark_fetching(FETCH_TRANSACTION, tx_hash):
            logger.debug("Detail fetch for %s already in flight", tx_hash)
            return
        self.rebuild()
        try:
            detail = await self.client.get_transaction_detail(tx_hash)
            if detail is not None:
                self.details.fill(tx_hash, detail)
                self.rebuild()
        except WalletGraphError as e:
            logger.warning("Detail fetch for %s failed: %s", tx_hash, e)
        finally:
            self.expansion.clear_fetching(FETCH_TRANSACTION, tx_hash)
            self.rebuild()

    async def _fetch_history(self, address: str) -> None:
        if self.histories.has(address):
            return
        if not self.expansion.mark_fetching(FETCH_ADDRESS, address):
            logger.debug("History fetch for %s already in flight", address)
            return
        self.rebuild()
        try:
            other = resolve_counterparty(address, self.details.snapshot(), self.root_address)
            logger.debug("Fetching history between %s and %s", other, address)
            txns = await fetch_transactions_between(
                self.client, other, address, limit=self.settings.history_limit
            )
            self.histories.fill(address, txns)
            self.rebuild()
        except WalletGraphError as e:
            logger.warning("History fetch for %s failed: %s", address, e)
        finally:
            self.expansion.clear_fetching(FETCH_ADDRESS, address)
            self.rebuild()
