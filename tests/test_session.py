"""Tests for walletgraph/session.py — expansion flow, caching, in-flight interlock."""

from __future__ import annotations

import asyncio

import pytest

from conftest import (
    ADDR_B,
    ADDR_C,
    ADDR_D,
    ROOT_ADDR,
    FakeExplorerClient,
    make_transfer,
    make_tx,
)
from walletgraph.cache import FETCH_ADDRESS, FETCH_TRANSACTION
from walletgraph.exceptions import APIError, NetworkTimeoutError
from walletgraph.models import WalletNode
from walletgraph.session import (
    LIST_FAILURE_ADVISORY,
    PAGE_OUT_OF_RANGE_ADVISORY,
    GraphSession,
    GraphSettings,
)

NO_PREFETCH = GraphSettings(prefetch_details=False)


async def _settle(rounds: int = 5) -> None:
    """Let pending tasks run up to their next blocking await."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def _tx_node(session: GraphSession, tx_hash: str):
    return next(c for c in session.graph.children if c.id == tx_hash)


# ── Initial load ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_loads_first_page_sorted(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()

    assert [t.tx_hash for t in session.transactions] == ["0xt1", "0xt2"]
    assert [c.id for c in session.graph.children] == ["0xt1", "0xt2"]
    assert session.current_page == 1
    assert session.total_pages == 3
    assert session.error == ""
    assert session.is_loading is False
    assert wallet_client.list_calls == [(ROOT_ADDR, 1, 20)]


@pytest.mark.asyncio
async def test_start_without_prefetch_nothing_expandable(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    assert all(not c.is_expandable for c in session.graph.children)
    assert wallet_client.detail_calls == []


@pytest.mark.asyncio
async def test_prefetch_details_for_transfers(wallet_client: FakeExplorerClient) -> None:
    """Transfer-tagged transactions get their detail up front."""
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()

    assert wallet_client.detail_calls == ["0xt1"]
    assert _tx_node(session, "0xt1").is_expandable is True
    assert _tx_node(session, "0xt2").is_expandable is False


@pytest.mark.asyncio
async def test_page_size_truncates(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, GraphSettings(page_size=1, prefetch_details=False))
    await session.start()
    assert [t.tx_hash for t in session.transactions] == ["0xt1"]


@pytest.mark.asyncio
async def test_total_pages_capped(wallet_client: FakeExplorerClient) -> None:
    wallet_client.last_page = 250
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    assert session.total_pages == 100


@pytest.mark.asyncio
async def test_list_failure_shows_advisory(fake_client: FakeExplorerClient) -> None:
    """A failed list fetch leaves an empty graph, an advisory and 5 pages."""
    fake_client.list_errors[ROOT_ADDR] = APIError("down")
    session = GraphSession(ROOT_ADDR, fake_client)
    await session.start()

    assert session.error == LIST_FAILURE_ADVISORY
    assert session.transactions == []
    assert session.total_pages == 5
    assert session.current_page == 1
    assert session.graph.children == ()
    assert session.to_dict()["error"] == LIST_FAILURE_ADVISORY


@pytest.mark.asyncio
async def test_start_on_requested_page(wallet_client: FakeExplorerClient) -> None:
    """Opening on a later page fetches only that page and its details."""
    wallet_client.lists[ROOT_ADDR][2] = [make_tx("0xp2", operations="transfer")]
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start(2)

    assert session.current_page == 2
    assert session.error == ""
    assert [t.tx_hash for t in session.transactions] == ["0xp2"]
    assert wallet_client.list_calls == [(ROOT_ADDR, 2, 20)]
    assert wallet_client.detail_calls == ["0xp2"]


@pytest.mark.asyncio
async def test_start_past_last_page_falls_back(wallet_client: FakeExplorerClient) -> None:
    """A page beyond the explorer's last page shows page 1 with an advisory."""
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start(5)

    assert session.current_page == 1
    assert session.total_pages == 3
    assert session.error == PAGE_OUT_OF_RANGE_ADVISORY.format(page=5, total=3)
    assert [t.tx_hash for t in session.transactions] == ["0xt1", "0xt2"]
    assert wallet_client.list_calls == [(ROOT_ADDR, 5, 20), (ROOT_ADDR, 1, 20)]
    assert wallet_client.detail_calls == ["0xt1"]
    assert session.to_dict()["error"] == session.error


# ── Transaction expansion ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_expand_transaction_fetches_detail(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()

    await session.on_transaction_node_activated("0xt1")

    node = _tx_node(session, "0xt1")
    assert node.is_expandable is True
    assert node.is_expanded is True
    assert node.is_fetching is False
    transfer = node.children[0]
    assert transfer.id == "0xt1-transfer-0"
    from_node, to_node = transfer.children
    assert (from_node.address, from_node.is_expandable) == (ADDR_B, False)
    assert (to_node.address, to_node.is_expandable) == (ADDR_C, True)
    assert session.selected_transaction is not None
    assert session.selected_transaction.tx_hash == "0xt1"


@pytest.mark.asyncio
async def test_no_duplicate_fetch_while_in_flight(wallet_client: FakeExplorerClient) -> None:
    """Re-expanding a transaction whose detail is still loading does not refetch."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.detail_gate = asyncio.Event()

    first = asyncio.create_task(session.on_transaction_node_activated("0xt1"))
    await _settle()
    await session.on_transaction_node_activated("0xt1")  # collapse
    await session.on_transaction_node_activated("0xt1")  # expand again, still in flight

    assert wallet_client.detail_calls == ["0xt1"]
    wallet_client.detail_gate.set()
    await first

    assert wallet_client.detail_calls == ["0xt1"]
    assert not session.expansion.snapshot().is_fetching(FETCH_TRANSACTION, "0xt1")
    assert _tx_node(session, "0xt1").children


@pytest.mark.asyncio
async def test_collapse_during_fetch_still_fills_cache(wallet_client: FakeExplorerClient) -> None:
    """A fetch outlives a collapse; its result shows on the next expansion."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.detail_gate = asyncio.Event()

    task = asyncio.create_task(session.on_transaction_node_activated("0xt1"))
    await _settle()
    await session.on_transaction_node_activated("0xt1")  # collapse
    wallet_client.detail_gate.set()
    await task

    assert session.details.has("0xt1")
    node = _tx_node(session, "0xt1")
    assert node.is_expanded is False
    assert node.is_expandable is True
    assert node.children == ()

    await session.on_transaction_node_activated("0xt1")
    assert wallet_client.detail_calls == ["0xt1"]
    assert _tx_node(session, "0xt1").children


@pytest.mark.asyncio
async def test_render_while_fetching(wallet_client: FakeExplorerClient) -> None:
    """While the detail is pending the node is expanded, fetching and childless."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.detail_gate = asyncio.Event()

    task = asyncio.create_task(session.on_transaction_node_activated("0xt1"))
    await _settle()

    node = _tx_node(session, "0xt1")
    assert node.is_expanded is True
    assert node.is_fetching is True
    assert node.children == ()

    wallet_client.detail_gate.set()
    await task
    assert _tx_node(session, "0xt1").is_fetching is False


@pytest.mark.asyncio
async def test_hung_fetch_keeps_marker(wallet_client: FakeExplorerClient) -> None:
    """A fetch that never returns leaves the in-flight marker set."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.detail_gate = asyncio.Event()

    task = asyncio.create_task(session.on_transaction_node_activated("0xt1"))
    await _settle(20)

    assert session.expansion.snapshot().is_fetching(FETCH_TRANSACTION, "0xt1")
    assert not task.done()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_collapse_keeps_cache(wallet_client: FakeExplorerClient) -> None:
    """Collapse then re-expand reuses the cached detail."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()

    await session.on_transaction_node_activated("0xt1")
    await session.on_transaction_node_activated("0xt1")
    collapsed = _tx_node(session, "0xt1")
    assert collapsed.is_expanded is False
    assert collapsed.children == ()
    assert collapsed.is_expandable is True

    await session.on_transaction_node_activated("0xt1")
    assert wallet_client.detail_calls == ["0xt1"]
    assert _tx_node(session, "0xt1").children


@pytest.mark.asyncio
async def test_detail_failure_not_cached_and_retried(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.detail_errors["0xt1"] = NetworkTimeoutError("slow")

    await session.on_transaction_node_activated("0xt1")

    assert not session.details.has("0xt1")
    node = _tx_node(session, "0xt1")
    assert node.is_expanded is True
    assert node.is_expandable is False
    assert node.is_fetching is False

    del wallet_client.detail_errors["0xt1"]
    await session.on_transaction_node_activated("0xt1")
    await session.on_transaction_node_activated("0xt1")

    assert wallet_client.detail_calls == ["0xt1", "0xt1"]
    assert session.details.has("0xt1")


@pytest.mark.asyncio
async def test_missing_detail_not_cached(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    await session.on_transaction_node_activated("0xt2")
    assert not session.details.has("0xt2")
    assert _tx_node(session, "0xt2").is_expandable is False


@pytest.mark.asyncio
async def test_on_render_receives_every_rebuild(wallet_client: FakeExplorerClient) -> None:
    rendered: list[WalletNode] = []
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH, on_render=rendered.append)
    await session.start()
    assert len(rendered) == 1

    await session.on_transaction_node_activated("0xt1")

    # toggle, fetch start, cache fill, fetch end
    assert len(rendered) == 5
    in_flight = next(c for c in rendered[2].children if c.id == "0xt1")
    assert in_flight.is_fetching is True
    assert in_flight.children == ()
    assert rendered[-1] is session.graph
    assert session.renders == 5


# ── Address expansion ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_expand_address_uses_counterparty(wallet_client: FakeExplorerClient) -> None:
    """Expanding C (received from B in a cached detail) fetches B↔C history."""
    wallet_client.lists[ADDR_B] = {1: [make_tx("0xin", ts_ms=1, sender=ADDR_C)]}
    wallet_client.lists[ADDR_C] = {1: [make_tx("0xout", ts_ms=2, sender=ADDR_B)]}
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()
    await session.on_transaction_node_activated("0xt1")

    await session.on_address_node_activated(ADDR_C)

    assert (ADDR_B, 1, 10) in wallet_client.list_calls
    assert (ADDR_C, 1, 10) in wallet_client.list_calls
    to_node = _tx_node(session, "0xt1").children[0].children[1]
    assert to_node.is_expanded is True
    assert [(c.id, c.hash, c.direction) for c in to_node.children] == [
        (f"{ADDR_C}-tx-0", "0xout", "outgoing"),
        (f"{ADDR_C}-tx-1", "0xin", "incoming"),
    ]


@pytest.mark.asyncio
async def test_expand_unknown_address_falls_back_to_root(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()

    await session.on_address_node_activated(ADDR_D)

    assert (ROOT_ADDR, 1, 10) in wallet_client.list_calls
    assert (ADDR_D, 1, 10) in wallet_client.list_calls
    assert session.histories.has(ADDR_D)


@pytest.mark.asyncio
async def test_history_limit_from_settings(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, GraphSettings(history_limit=3))
    await session.start()
    await session.on_address_node_activated(ADDR_D)
    assert (ADDR_D, 1, 3) in wallet_client.list_calls


@pytest.mark.asyncio
async def test_address_fetch_not_duplicated(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()
    wallet_client.list_gate = asyncio.Event()
    calls_before = len(wallet_client.list_calls)

    task = asyncio.create_task(session.on_address_node_activated(ADDR_D))
    await _settle()
    assert session.expansion.snapshot().is_fetching(FETCH_ADDRESS, ADDR_D)
    await session.on_address_node_activated(ADDR_D)
    await session.on_address_node_activated(ADDR_D)

    wallet_client.list_gate.set()
    await task

    assert len(wallet_client.list_calls) - calls_before == 2
    assert not session.expansion.snapshot().is_fetching(FETCH_ADDRESS, ADDR_D)


@pytest.mark.asyncio
async def test_address_history_cached_across_collapse(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()

    await session.on_address_node_activated(ADDR_D)
    calls = len(wallet_client.list_calls)
    await session.on_address_node_activated(ADDR_D)
    await session.on_address_node_activated(ADDR_D)

    assert len(wallet_client.list_calls) == calls
    assert session.expansion.snapshot().is_address_expanded(ADDR_D)


@pytest.mark.asyncio
async def test_address_failure_not_cached(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()
    wallet_client.list_errors[ROOT_ADDR] = APIError("down")
    wallet_client.list_errors[ADDR_D] = APIError("down")

    await session.on_address_node_activated(ADDR_D)

    assert not session.histories.has(ADDR_D)
    state = session.expansion.snapshot()
    assert state.is_address_expanded(ADDR_D)
    assert not state.is_fetching(FETCH_ADDRESS, ADDR_D)


# ── Paging ────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_page_change_keeps_caches(wallet_client: FakeExplorerClient) -> None:
    wallet_client.lists[ROOT_ADDR][2] = [make_tx("0xt3", operations="transfer")]
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()

    assert await session.on_page_change(2) is True
    assert session.current_page == 2
    assert [t.tx_hash for t in session.transactions] == ["0xt3"]
    assert session.details.has("0xt1")

    assert await session.on_page_change(1) is True
    assert wallet_client.detail_calls == ["0xt1", "0xt3"]
    assert _tx_node(session, "0xt1").is_expandable is True


@pytest.mark.asyncio
async def test_page_change_guards(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    calls = len(wallet_client.list_calls)

    assert await session.on_page_change(0) is False
    assert await session.on_page_change(4) is False
    assert await session.on_page_change(1) is False
    session.is_loading = True
    assert await session.on_page_change(2) is False
    assert len(wallet_client.list_calls) == calls


@pytest.mark.asyncio
async def test_page_change_past_shrunken_last_page(wallet_client: FakeExplorerClient) -> None:
    """If the explorer now reports fewer pages, the current page stays."""
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    wallet_client.last_page = 1

    assert await session.on_page_change(2) is False
    assert session.current_page == 1
    assert session.total_pages == 1
    assert [t.tx_hash for t in session.transactions] == ["0xt1", "0xt2"]


@pytest.mark.asyncio
async def test_page_change_preserves_expansion(wallet_client: FakeExplorerClient) -> None:
    """Expansion state survives a round trip through another page."""
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()
    await session.on_transaction_node_activated("0xt1")

    await session.on_page_change(2)
    await session.on_page_change(1)

    assert _tx_node(session, "0xt1").is_expanded is True


# ── Selection / serialization ─────────────────────────────────────────────────


def test_token_transfer_selection(fake_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, fake_client)
    renders = session.renders
    transfer = make_transfer(ADDR_B, ADDR_C)

    session.on_token_transfer_node_activated(transfer)

    assert session.selected_transfer is transfer
    assert session.renders == renders + 1


@pytest.mark.asyncio
async def test_find_transaction_searches_histories(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client, NO_PREFETCH)
    await session.start()
    session.histories.fill(ADDR_D, [make_tx("0xh1")])

    assert session.find_transaction("0xt2").tx_hash == "0xt2"
    assert session.find_transaction("0xh1").tx_hash == "0xh1"
    assert session.find_transaction("0xnone") is None


@pytest.mark.asyncio
async def test_to_dict(wallet_client: FakeExplorerClient) -> None:
    session = GraphSession(ROOT_ADDR, wallet_client)
    await session.start()
    d = session.to_dict()
    assert d["address"] == ROOT_ADDR
    assert d["page"] == 1
    assert d["total_pages"] == 3
    assert d["transaction_count"] == 2
    assert d["error"] is None
    assert d["graph"]["id"] == ROOT_ADDR
    assert len(d["graph"]["children"]) == 2


def test_settings_from_config(sample_config) -> None:
    sample_config.graph.page_size = 7
    sample_config.graph.prefetch_details = False
    settings = GraphSettings.from_config(sample_config)
    assert settings.page_size == 7
    assert settings.prefetch_details is False
    assert settings.fallback_pages == 5


def test_initial_graph_is_empty_root() -> None:
    session = GraphSession(ROOT_ADDR, FakeExplorerClient())
    assert session.graph.id == ROOT_ADDR
    assert session.graph.children == ()
    assert session.renders == 0
