"""Transactions exchanged between two addresses."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from walletgraph.exceptions import WalletGraphError
from walletgraph.fetchers import ExplorerClient
from walletgraph.models import Transaction, TransactionPage
from walletgraph.normalize import dedup_transactions

logger = logging.getLogger(__name__)


async def fetch_transactions_between(
    client: ExplorerClient,
    address1: str,
    address2: str,
    limit: int = 5,
) -> list[Transaction]:
    """
    Fetch the recent transactions linking address1 and address2.

    The explorer only lists transactions by recipient, so both directions are
    requested (first page, `limit` entries each) and filtered on the other
    side's sender/contract address:
      - address1's list, touching address2 → "incoming"
      - address2's list, touching address1 → "outgoing"

    Result is deduplicated by hash and sorted most recent first. A side that
    fails is logged and skipped; if both fail, the first error propagates.
    """
    results = await asyncio.gather(
        client.get_transactions(address1, page=1, page_size=limit),
        client.get_transactions(address2, page=1, page_size=limit),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, BaseException)]
    if len(errors) == len(results):
        raise errors[0]

    merged: list[Transaction] = []
    sides = (
        (results[0], address2, "incoming"),
        (results[1], address1, "outgoing"),
    )
    for result, counterparty, direction in sides:
        if isinstance(result, BaseException):
            if not isinstance(result, WalletGraphError):
                raise result
            logger.warning("History fetch for %s side failed: %s", direction, result)
            continue
        merged.extend(_touching(result, counterparty, direction))

    return dedup_transactions(merged)


def _touching(page: TransactionPage, counterparty: str, direction: str) -> list[Transaction]:
    return [
        replace(t, direction=direction)
        for t in page.items
        if t.sender_address == counterparty or t.contract_address == counterparty
    ]
