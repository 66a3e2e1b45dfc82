"""walletgraph — expandable transaction graphs for Starknet wallets."""

__version__ = "0.1.0"
