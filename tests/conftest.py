"""Pytest fixtures shared across all walletgraph tests."""

from __future__ import annotations

import asyncio

import pytest

from walletgraph.config import (
    APIConfig,
    GraphConfig,
    OutputConfig,
    WalletGraphConfig,
)
from walletgraph.models import TokenTransfer, Transaction, TransactionDetail, TransactionPage

# ── Addresses ─────────────────────────────────────────────────────────────────


ROOT_ADDR = "0x" + "a" * 64
ADDR_B = "0x" + "b" * 64
ADDR_C = "0x" + "c" * 64
ADDR_D = "0x" + "d" * 64

TS_BASE_MS = 1_706_906_640_000


# ── Builders ──────────────────────────────────────────────────────────────────


def make_tx(
    tx_hash: str,
    ts_ms: int = TS_BASE_MS,
    operations: str = "",
    sender: str = ROOT_ADDR,
    contract: str = "",
    fee: str = "1000000000000000",
    direction: str | None = None,
) -> Transaction:
    return Transaction(
        tx_hash=tx_hash,
        block_number=100_000,
        sender_address=sender,
        contract_address=contract,
        tx_type="INVOKE",
        timestamp_ms=ts_ms,
        fee_raw=fee,
        operations=operations,
        status="SUCCEEDED",
        direction=direction,
    )


def make_transfer(
    from_addr: str,
    to_addr: str,
    amount: str = "1.5",
    symbol: str = "STRK",
) -> TokenTransfer:
    return TokenTransfer(
        from_addr=from_addr,
        to_addr=to_addr,
        amount=amount,
        symbol=symbol,
        token_address="0x" + "e" * 64,
        token_name="Starknet Token",
    )


def make_detail(tx_hash: str, *transfers: TokenTransfer) -> TransactionDetail:
    return TransactionDetail(
        tx_hash=tx_hash,
        actual_fee="1000000000000000",
        actual_fee_unit="WEI",
        token_transfers=tuple(transfers),
    )


def make_raw_tx(
    tx_hash: str = "0xabc",
    ts: int = 1_706_906_640,
    operations: str = "transfer",
    sender: str = ROOT_ADDR,
    contract: str = ADDR_B,
) -> dict:
    """Raw Voyager /txns item."""
    return {
        "blockId": "0xblock",
        "blockNumber": 812345,
        "hash": tx_hash,
        "index": 3,
        "type": "INVOKE",
        "sender_address": sender,
        "contract_address": contract,
        "timestamp": ts,
        "actual_fee": "2500000000000000",
        "execution_status": "SUCCEEDED",
        "status": "ACCEPTED_ON_L2",
        "operations": operations,
    }


# ── Fake explorer client ──────────────────────────────────────────────────────


class FakeExplorerClient:
    """
    Scriptable ExplorerClient.

    lists:   address → {page → [Transaction]}
    details: tx hash → TransactionDetail (missing → None)
    *_gate:  when set to an asyncio.Event, fetches block until it is set
    *_errors: key → exception raised instead of returning
    """

    def __init__(self) -> None:
        self.lists: dict[str, dict[int, list[Transaction]]] = {}
        self.details: dict[str, TransactionDetail] = {}
        self.last_page = 3
        self.list_gate: asyncio.Event | None = None
        self.detail_gate: asyncio.Event | None = None
        self.list_errors: dict[str, Exception] = {}
        self.detail_errors: dict[str, Exception] = {}
        self.list_calls: list[tuple[str, int, int]] = []
        self.detail_calls: list[str] = []
        self.closed = False

    async def get_transactions(self, address: str, page: int, page_size: int) -> TransactionPage:
        self.list_calls.append((address, page, page_size))
        if self.list_gate is not None:
            await self.list_gate.wait()
        if address in self.list_errors:
            raise self.list_errors[address]
        items = self.lists.get(address, {}).get(page, [])
        return TransactionPage(items=list(items), last_page=self.last_page)

    async def get_transaction_detail(self, tx_hash: str) -> TransactionDetail | None:
        self.detail_calls.append(tx_hash)
        if self.detail_gate is not None:
            await self.detail_gate.wait()
        if tx_hash in self.detail_errors:
            raise self.detail_errors[tx_hash]
        return self.details.get(tx_hash)

    async def validate_address(self, address: str) -> bool:
        return address.startswith("0x")

    async def close(self) -> None:
        self.closed = True


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_config() -> WalletGraphConfig:
    """Minimal valid WalletGraphConfig for tests."""
    return WalletGraphConfig(
        api=APIConfig(
            network="sepolia",
            base_url="",
            api_key="",
            timeout_seconds=5.0,
            rate_limit_per_second=100,
        ),
        graph=GraphConfig(
            page_size=20,
            history_limit=10,
            max_pages=100,
            fallback_pages=5,
            prefetch_details=True,
        ),
        output=OutputConfig(default_format="json", color=False),
    )


@pytest.fixture
def fake_client() -> FakeExplorerClient:
    return FakeExplorerClient()


@pytest.fixture
def wallet_client(fake_client: FakeExplorerClient) -> FakeExplorerClient:
    """
    Root wallet with two transactions on page 1:
      t1 — transfer, detail has one STRK transfer ADDR_B → ADDR_C
      t2 — plain invoke, no detail
    """
    fake_client.lists[ROOT_ADDR] = {
        1: [
            make_tx("0xt2", ts_ms=TS_BASE_MS, operations="invoke"),
            make_tx("0xt1", ts_ms=TS_BASE_MS + 60_000, operations="transfer"),
        ],
    }
    fake_client.details["0xt1"] = make_detail("0xt1", make_transfer(ADDR_B, ADDR_C))
    return fake_client
