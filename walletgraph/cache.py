"""
Session caches and expansion state.

- TransactionDetailCache: tx hash → TransactionDetail
- AddressHistoryCache: expanded address → transactions between it and its
  counterparty
- ExpansionStateStore: which transactions/addresses are toggled open and
  which fetches are in flight

Nothing is ever evicted: the data set only grows through user-driven
expansion, and collapsing a node only flips a visibility bit. All mutation
happens on the single event loop thread, so there is no locking; every read
the graph builder does goes through `snapshot()`, which copies the current
state so it can't change underneath a rebuild.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Generic, TypeVar

from walletgraph.models import Transaction, TransactionDetail

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# In-flight marker kinds
FETCH_TRANSACTION = "transaction"
FETCH_ADDRESS = "address"
FETCH_KINDS = {FETCH_TRANSACTION, FETCH_ADDRESS}


class _SessionCache(Generic[K, V]):
    """Insertion-ordered memo table with no eviction."""

    name = "cache"

    def __init__(self) -> None:
        self._entries: dict[K, V] = {}

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def has(self, key: K) -> bool:
        return key in self._entries

    def fill(self, key: K, value: V) -> None:
        """Store value under key. Last write wins."""
        self._entries[key] = value
        logger.debug("%s filled %s (%d entries)", self.name, key, len(self._entries))

    def snapshot(self) -> Mapping[K, V]:
        """Read-only copy of the current entries, in insertion order."""
        return MappingProxyType(dict(self._entries))

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class TransactionDetailCache(_SessionCache[str, TransactionDetail]):
    """Transaction details keyed by transaction hash."""

    name = "detail cache"


class AddressHistoryCache(_SessionCache[str, list[Transaction]]):
    """Between-address histories keyed by the address the user expanded."""

    name = "history cache"

    def snapshot(self) -> Mapping[str, list[Transaction]]:
        return MappingProxyType({k: list(v) for k, v in self._entries.items()})


@dataclass(frozen=True)
class ExpansionState:
    """Immutable view of what is expanded and what is being fetched."""

    expanded_transactions: frozenset[str] = field(default_factory=frozenset)
    expanded_addresses: frozenset[str] = field(default_factory=frozenset)
    fetching_transactions: frozenset[str] = field(default_factory=frozenset)
    fetching_addresses: frozenset[str] = field(default_factory=frozenset)

    def is_transaction_expanded(self, tx_hash: str) -> bool:
        return tx_hash in self.expanded_transactions

    def is_address_expanded(self, address: str) -> bool:
        return address in self.expanded_addresses

    def is_fetching(self, kind: str, key: str) -> bool:
        return key in self._fetching_set(kind)

    def _fetching_set(self, kind: str) -> frozenset[str]:
        if kind == FETCH_TRANSACTION:
            return self.fetching_transactions
        if kind == FETCH_ADDRESS:
            return self.fetching_addresses
        raise ValueError(f"Unknown fetch kind: {kind!r}. Valid: {sorted(FETCH_KINDS)}")


class ExpansionStateStore:
    """
    Single owner of the expansion state.

    Each mutation swaps in a new ExpansionState instead of editing sets in
    place, so a snapshot handed to the graph builder stays valid forever.
    `version` increases by one per effective change.
    """

    def __init__(self) -> None:
        self._state = ExpansionState()
        self.version = 0

    def snapshot(self) -> ExpansionState:
        return self._state

    def toggle_transaction(self, tx_hash: str) -> bool:
        """Flip a transaction's expanded bit. Returns True if it is now expanded."""
        expanded = self._state.expanded_transactions ^ {tx_hash}
        self._swap(replace(self._state, expanded_transactions=expanded))
        return tx_hash in expanded

    def toggle_address(self, address: str) -> bool:
        """Flip an address's expanded bit. Returns True if it is now expanded."""
        expanded = self._state.expanded_addresses ^ {address}
        self._swap(replace(self._state, expanded_addresses=expanded))
        return address in expanded

    def mark_fetching(self, kind: str, key: str) -> bool:
        """
        Claim the in-flight slot for (kind, key).

        Returns False if a fetch for the key is already outstanding. The check
        and the set happen without an await in between, which is what makes
        this the duplicate-fetch interlock.
        """
        current = self._state._fetching_set(kind)
        if key in current:
            return False
        self._swap(self._with_fetching(kind, current | {key}))
        return True

    def clear_fetching(self, kind: str, key: str) -> bool:
        """Release the in-flight slot. Returns False if it was not held."""
        current = self._state._fetching_set(kind)
        if key not in current:
            return False
        self._swap(self._with_fetching(kind, current - {key}))
        return True

    def _with_fetching(self, kind: str, keys: frozenset[str]) -> ExpansionState:
        if kind == FETCH_TRANSACTION:
            return replace(self._state, fetching_transactions=keys)
        return replace(self._state, fetching_addresses=keys)

    def _swap(self, state: ExpansionState) -> None:
        self._state = state
        self.version += 1
