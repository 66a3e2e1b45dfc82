"""Basic wallet exploration example.

This script demonstrates how to use walletgraph to list a wallet's recent
transactions and expand the first one that carries token transfers.
"""

import json
import subprocess
import sys


def explore(address, *extra):
    result = subprocess.run(
        ["walletgraph", "explore", address, "--format", "json", *extra],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise RuntimeError(f"walletgraph explore failed: {result.stderr}")
    return json.loads(result.stdout)


def main():
    """Explore a Starknet Sepolia wallet."""
    if len(sys.argv) < 2:
        print("usage: basic_explore.py <address>")
        return

    address = sys.argv[1]
    data = explore(address)

    if data["error"]:
        print(f"Warning: {data['error']}")

    print(f"Page {data['page']} of {data['total_pages']}")
    transactions = data["graph"]["children"]
    for tx in transactions:
        marker = "▸" if tx["isExpandable"] else "•"
        print(f"  {marker} {tx['displayName']}  {tx['feeDisplay'] or ''}")

    expandable = [tx for tx in transactions if tx["isExpandable"]]
    if not expandable:
        return

    first = expandable[0]["id"]
    data = explore(address, "--expand-tx", first)
    tx = next(t for t in data["graph"]["children"] if t["id"] == first)
    print(f"\nTransfers in {first[:10]}...:")
    for transfer in tx["children"]:
        sender, recipient = transfer["children"]
        print(f"  {transfer['displayName']}: {sender['displayName']} → {recipient['displayName']}")


if __name__ == "__main__":
    main()
