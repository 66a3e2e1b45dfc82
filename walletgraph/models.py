"""
Shared data models for walletgraph.

Two families live here:

- Explorer records (Transaction, TokenTransfer, TransactionDetail,
  TransactionPage): produced by the normalizer, cached by the session.
- Graph nodes (WalletNode, TransactionNode, TokenTransferNode, AddressNode):
  the tagged union the graph builder emits on every rebuild. Nodes are
  frozen; a rebuild produces a fresh tree and renderers match nodes across
  rebuilds by `id` only.

Using dataclasses (not Pydantic) for zero-overhead in hot paths.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class Transaction:
    """A single Starknet transaction as listed by the explorer."""

    tx_hash: str
    block_number: int
    sender_address: str
    contract_address: str
    tx_type: str
    timestamp_ms: int           # Unix milliseconds
    fee_raw: str                # integer string, smallest fee unit
    operations: str             # free-text tag, e.g. "transfer"
    status: str
    direction: str | None = None    # "incoming" | "outgoing"; history records only

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.tx_hash,
            "block_number": self.block_number,
            "sender_address": self.sender_address,
            "contract_address": self.contract_address,
            "type": self.tx_type,
            "timestamp": self.timestamp_ms,
            "fee": self.fee_raw,
            "operations": self.operations,
            "status": self.status,
            "direction": self.direction,
        }


@dataclass(frozen=True)
class TokenTransfer:
    """One token movement inside a transaction receipt."""

    from_addr: str
    to_addr: str
    amount: str                 # decimal string, already scaled by the explorer
    symbol: str
    token_address: str
    token_name: str = ""
    decimals: int = 18
    function: str = ""
    token_id: str = ""
    usd: str | None = None
    usd_price: float | None = None
    from_alias: str | None = None
    to_alias: str | None = None
    token_logo_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_addr,
            "to": self.to_addr,
            "amount": self.amount,
            "symbol": self.symbol,
            "token_address": self.token_address,
            "token_name": self.token_name,
            "decimals": self.decimals,
            "function": self.function,
            "token_id": self.token_id,
            "usd": self.usd,
            "usd_price": self.usd_price,
            "from_alias": self.from_alias,
            "to_alias": self.to_alias,
            "token_logo_url": self.token_logo_url,
        }


@dataclass(frozen=True)
class TransactionDetail:
    """
    Receipt-level detail for one transaction.

    Cached once per hash for the lifetime of a session; `token_transfers`
    order is what positional node ids are derived from, so it never changes
    after the detail is cached.
    """

    tx_hash: str
    block_number: int = 0
    tx_type: str = ""
    sender_address: str = ""
    contract_address: str = ""
    timestamp_ms: int = 0
    execution_status: str = ""
    status: str = ""
    actual_fee: str = ""
    actual_fee_unit: str = ""
    token_transfers: tuple[TokenTransfer, ...] = ()
    fee_transfers: tuple[TokenTransfer, ...] = ()

    @property
    def has_transfers(self) -> bool:
        return len(self.token_transfers) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.tx_hash,
            "block_number": self.block_number,
            "type": self.tx_type,
            "sender_address": self.sender_address,
            "contract_address": self.contract_address,
            "timestamp": self.timestamp_ms,
            "execution_status": self.execution_status,
            "status": self.status,
            "actual_fee": self.actual_fee,
            "actual_fee_unit": self.actual_fee_unit,
            "token_transfers": [t.to_dict() for t in self.token_transfers],
            "fee_transfers": [t.to_dict() for t in self.fee_transfers],
        }


@dataclass
class TransactionPage:
    """One page of the explorer's transaction list."""

    items: list[Transaction]
    last_page: int


# ── Graph nodes ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WalletNode:
    """Root of the tree: the wallet being explored."""

    kind: ClassVar[str] = "wallet"

    id: str
    display_name: str
    address: str
    is_expandable: bool = False
    is_expanded: bool = True
    is_fetching: bool = False
    children: tuple[GraphNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "displayName": self.display_name,
            "address": self.address,
            "isExpandable": self.is_expandable,
            "isExpanded": self.is_expanded,
            "isFetching": self.is_fetching,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class TransactionNode:
    """A transaction, either on the wallet's page or in an address's history."""

    kind: ClassVar[str] = "transaction"

    id: str
    display_name: str
    hash: str
    fee_display: str | None
    timestamp: int
    is_expandable: bool = False
    is_expanded: bool = False
    is_fetching: bool = False
    direction: str | None = None
    children: tuple[GraphNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "displayName": self.display_name,
            "hash": self.hash,
            "feeDisplay": self.fee_display,
            "timestamp": self.timestamp,
            "isExpandable": self.is_expandable,
            "isExpanded": self.is_expanded,
            "isFetching": self.is_fetching,
            "direction": self.direction,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class TokenTransferNode:
    """One token transfer of an expanded transaction."""

    kind: ClassVar[str] = "token-transfer"

    id: str
    display_name: str
    transfer: TokenTransfer
    children: tuple[GraphNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "displayName": self.display_name,
            "tokenTransfer": self.transfer.to_dict(),
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class AddressNode:
    """A counter-party address hanging off a token transfer."""

    kind: ClassVar[str] = "address"

    id: str
    display_name: str
    address: str
    is_expandable: bool = False
    is_expanded: bool = False
    is_fetching: bool = False
    children: tuple[GraphNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "displayName": self.display_name,
            "address": self.address,
            "isExpandable": self.is_expandable,
            "isExpanded": self.is_expanded,
            "isFetching": self.is_fetching,
            "children": [c.to_dict() for c in self.children],
        }


GraphNode = WalletNode | TransactionNode | TokenTransferNode | AddressNode


def iter_nodes(root: GraphNode, depth: int = 0) -> Iterator[tuple[GraphNode, int]]:
    """Walk the tree depth-first, pre-order, yielding (node, depth)."""
    yield root, depth
    for child in root.children:
        yield from iter_nodes(child, depth + 1)
