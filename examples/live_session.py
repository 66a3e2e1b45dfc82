"""Live session example for walletgraph.

Drives a GraphSession directly: every rebuild is pushed to a render
callback, the way an interactive front end would redraw its tree.
"""

import asyncio
import sys

from walletgraph.config import load_config
from walletgraph.fetchers import get_fetcher
from walletgraph.models import iter_nodes
from walletgraph.output import format_output
from walletgraph.session import GraphSession, GraphSettings


def on_render(graph):
    fetching = [n.id for n, _ in iter_nodes(graph) if getattr(n, "is_fetching", False)]
    nodes = sum(1 for _ in iter_nodes(graph))
    print(f"render: {nodes} nodes, fetching={fetching or '-'}")


async def main(address):
    config = load_config()
    client = get_fetcher(config.api.network, config)
    try:
        session = GraphSession(
            address, client, GraphSettings.from_config(config), on_render=on_render
        )
        await session.start()

        expandable = [tx for tx in session.graph.children if tx.is_expandable]
        if expandable:
            tx_hash = expandable[0].hash
            await session.on_transaction_node_activated(tx_hash)
            # Expand the recipient of the first transfer
            detail = session.details.get(tx_hash)
            await session.on_address_node_activated(detail.token_transfers[0].to_addr)

        print(format_output(session.to_dict(), "tree"))
    finally:
        await client.close()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: live_session.py <address>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
