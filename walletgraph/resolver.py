"""Counterparty lookup for address expansion."""

from __future__ import annotations

from collections.abc import Mapping

from walletgraph.models import TransactionDetail


def resolve_counterparty(
    address: str,
    details: Mapping[str, TransactionDetail],
    fallback: str,
) -> str:
    """
    Pick the address whose shared history with `address` should be fetched.

    Walks the cached details in insertion order. Within a detail, the first
    transfer that involves `address` decides: its `to` if `address` sent,
    its `from` if `address` received, and the rest of that detail is
    skipped. Every detail is visited, so when several details mention the
    address the last of them wins. Without any match the root wallet
    (`fallback`) is used.

    Only already-cached details are consulted; this never fetches.
    """
    other = fallback
    for detail in details.values():
        for transfer in detail.token_transfers:
            if transfer.from_addr == address:
                other = transfer.to_addr
                break
            if transfer.to_addr == address:
                other = transfer.from_addr
                break
    return other
