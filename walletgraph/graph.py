"""
Graph builder: explorer state → GraphNode tree.

`build_graph` is a pure function of its inputs. It is called after every
state change and its output fully replaces the previous tree; renderers
diff trees by node `id`, so identical inputs must always produce identical
ids, child order and flags.

Node ids:
  wallet            <root address>
  transaction       <tx hash>
  token transfer    <tx hash>-transfer-<i>
  from / to         <transfer id>-from, <transfer id>-to
  history tx        <address>-tx-<i>

Expandability only ever comes from cache contents: a transaction is
expandable once its detail is cached with at least one token transfer,
never from its `operations` tag.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from walletgraph.cache import FETCH_ADDRESS, FETCH_TRANSACTION, ExpansionState
from walletgraph.models import (
    AddressNode,
    TokenTransfer,
    TokenTransferNode,
    Transaction,
    TransactionDetail,
    TransactionNode,
    WalletNode,
)
from walletgraph.normalize import format_fee, short_address


def build_graph(
    root_address: str,
    transactions: Sequence[Transaction],
    state: ExpansionState,
    details: Mapping[str, TransactionDetail],
    histories: Mapping[str, Sequence[Transaction]],
) -> WalletNode:
    """
    Build the full tree for one render pass.

    Args:
        root_address: Wallet being explored (root node id).
        transactions: Current page, already sorted most recent first.
        state: Expansion/in-flight snapshot.
        details: Detail cache snapshot (tx hash → detail).
        histories: History cache snapshot (address → transactions).
    """
    children = tuple(
        _transaction_node(tx, state, details, histories) for tx in transactions
    )
    return WalletNode(
        id=root_address,
        display_name=short_address(root_address),
        address=root_address,
        is_expandable=False,
        is_expanded=True,
        is_fetching=False,
        children=children,
    )


def _transaction_node(
    tx: Transaction,
    state: ExpansionState,
    details: Mapping[str, TransactionDetail],
    histories: Mapping[str, Sequence[Transaction]],
) -> TransactionNode:
    detail = details.get(tx.tx_hash)
    expandable = detail is not None and detail.has_transfers
    expanded = state.is_transaction_expanded(tx.tx_hash)

    children: tuple = ()
    if expanded and expandable:
        children = tuple(
            _transfer_node(f"{tx.tx_hash}-transfer-{i}", transfer, state, histories)
            for i, transfer in enumerate(detail.token_transfers)
        )

    return TransactionNode(
        id=tx.tx_hash,
        display_name=tx.operations or tx.tx_type,
        hash=tx.tx_hash,
        fee_display=format_fee(tx.fee_raw),
        timestamp=tx.timestamp_ms,
        is_expandable=expandable,
        is_expanded=expanded,
        is_fetching=state.is_fetching(FETCH_TRANSACTION, tx.tx_hash),
        children=children,
    )


def _transfer_node(
    node_id: str,
    transfer: TokenTransfer,
    state: ExpansionState,
    histories: Mapping[str, Sequence[Transaction]],
) -> TokenTransferNode:
    # "from" is never expandable from here; only "to" is
    from_node = _address_node(
        f"{node_id}-from",
        "From",
        transfer.from_addr,
        expandable=False,
        state=state,
        histories=histories,
    )
    to_node = _address_node(
        f"{node_id}-to",
        "To",
        transfer.to_addr,
        expandable=True,
        state=state,
        histories=histories,
    )
    return TokenTransferNode(
        id=node_id,
        display_name=f"{transfer.amount} {transfer.symbol}",
        transfer=transfer,
        children=(from_node, to_node),
    )


def _address_node(
    node_id: str,
    label: str,
    address: str,
    expandable: bool,
    state: ExpansionState,
    histories: Mapping[str, Sequence[Transaction]],
) -> AddressNode:
    children: tuple = ()
    if state.is_address_expanded(address) and address in histories:
        children = tuple(
            _history_node(f"{address}-tx-{i}", tx)
            for i, tx in enumerate(histories[address])
        )

    return AddressNode(
        id=node_id,
        display_name=f"{label}: {short_address(address)}",
        address=address,
        is_expandable=expandable,
        is_expanded=expandable and state.is_address_expanded(address),
        is_fetching=state.is_fetching(FETCH_ADDRESS, address),
        children=children,
    )


def _history_node(node_id: str, tx: Transaction) -> TransactionNode:
    fee = format_fee(tx.fee_raw, places=4, unit="STRK")
    return TransactionNode(
        id=node_id,
        display_name=f"{fee or 'N/A'} - {tx.operations or tx.tx_type}",
        hash=tx.tx_hash,
        fee_display=fee,
        timestamp=tx.timestamp_ms,
        direction=tx.direction,
    )
