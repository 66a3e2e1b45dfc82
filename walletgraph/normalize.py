"""
Normalization helpers: Voyager payloads → walletgraph records.

Voyager reports timestamps in Unix seconds and uses its own field names;
everything downstream works with the `Transaction` / `TransactionDetail`
shapes from models.py. Malformed entries are tolerated: missing optional
fields fall back to empty values, and an entry that cannot be identified at
all yields None instead of raising.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from walletgraph.models import TokenTransfer, Transaction, TransactionDetail

# Hard ceiling on pages, whatever the explorer reports as lastPage
MAX_PAGES = 100

# Fee tokens on Starknet use 18 decimals
FEE_DECIMALS = 18


def normalize_transaction(raw: dict[str, Any], direction: str | None = None) -> Transaction | None:
    """Map one raw `/txns` entry to a Transaction. Returns None without a hash."""
    try:
        tx_hash = raw.get("hash")
        if not tx_hash:
            return None
        return Transaction(
            tx_hash=str(tx_hash),
            block_number=int(raw.get("blockNumber") or 0),
            sender_address=raw.get("sender_address") or "",
            contract_address=raw.get("contract_address") or "",
            tx_type=raw.get("type") or "",
            timestamp_ms=int(raw.get("timestamp") or 0) * 1000,
            fee_raw=str(raw.get("actual_fee") or ""),
            operations=raw.get("operations") or "",
            status=raw.get("execution_status") or "",
            direction=direction,
        )
    except (AttributeError, ValueError, TypeError):
        return None


def normalize_transactions(items: list[Any], direction: str | None = None) -> list[Transaction]:
    """Normalize a list of raw entries, dropping the ones that can't be parsed."""
    txns: list[Transaction] = []
    for raw in items or []:
        if not isinstance(raw, dict):
            continue
        t = normalize_transaction(raw, direction=direction)
        if t:
            txns.append(t)
    return txns


def normalize_token_transfer(raw: dict[str, Any]) -> TokenTransfer | None:
    """
    Map one `receipt.tokensTransferred` entry. Needs at least from and to.

    Any other field that is missing or malformed falls back to its default
    without dropping the transfer, so positional ids stay aligned with the
    receipt.
    """
    from_addr = raw.get("from")
    to_addr = raw.get("to")
    if not from_addr or not to_addr:
        return None
    return TokenTransfer(
        from_addr=str(from_addr),
        to_addr=str(to_addr),
        amount=str(raw.get("amount") or "0"),
        symbol=str(raw.get("symbol") or ""),
        token_address=str(raw.get("tokenAddress") or ""),
        token_name=str(raw.get("tokenName") or ""),
        decimals=_optional_int(raw.get("decimals"), default=18),
        function=str(raw.get("function") or ""),
        token_id=str(raw.get("tokenId") or ""),
        usd=raw.get("usd") or None,
        usd_price=_optional_float(raw.get("usdPrice")),
        from_alias=raw.get("fromAlias") or None,
        to_alias=raw.get("toAlias") or None,
        token_logo_url=raw.get("tokenLogoUrl") or None,
    )


def _optional_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def normalize_detail(raw: Any, tx_hash: str) -> TransactionDetail | None:
    """
    Map a `/txn/{hash}` payload to a TransactionDetail.

    Only a payload that is not a JSON object is rejected; a missing header or
    receipt just leaves the corresponding fields empty.
    """
    if not isinstance(raw, dict):
        return None

    header = raw.get("header") if isinstance(raw.get("header"), dict) else {}
    receipt = raw.get("receipt") if isinstance(raw.get("receipt"), dict) else {}

    transfers = _parse_transfers(receipt.get("tokensTransferred"))
    fee_transfers = _parse_transfers(receipt.get("feeTransferred"))

    try:
        block_number = int(header.get("blockNumber") or 0)
        timestamp_ms = int(header.get("timestamp") or 0) * 1000
    except (ValueError, TypeError):
        block_number, timestamp_ms = 0, 0

    return TransactionDetail(
        tx_hash=header.get("hash") or tx_hash,
        block_number=block_number,
        tx_type=header.get("type") or "",
        sender_address=header.get("sender_address") or "",
        contract_address=header.get("contract_address") or "",
        timestamp_ms=timestamp_ms,
        execution_status=header.get("execution_status") or "",
        status=header.get("status") or "",
        actual_fee=str(raw.get("actualFee") or ""),
        actual_fee_unit=raw.get("actualFeeUnit") or "",
        token_transfers=transfers,
        fee_transfers=fee_transfers,
    )


def _parse_transfers(items: Any) -> tuple[TokenTransfer, ...]:
    if not isinstance(items, list):
        return ()
    parsed = (normalize_token_transfer(t) for t in items if isinstance(t, dict))
    return tuple(t for t in parsed if t is not None)


# ── Ordering / dedup / paging ─────────────────────────────────────────────────


def sort_by_timestamp_desc(txns: list[Transaction]) -> list[Transaction]:
    """Most recent first. Stable, so equal timestamps keep their input order."""
    return sorted(txns, key=lambda t: t.timestamp_ms, reverse=True)


def dedup_transactions(txns: list[Transaction]) -> list[Transaction]:
    """Drop repeated hashes (first occurrence wins), then sort most recent first."""
    seen: set[str] = set()
    unique: list[Transaction] = []
    for t in txns:
        if t.tx_hash in seen:
            continue
        seen.add(t.tx_hash)
        unique.append(t)
    return sort_by_timestamp_desc(unique)


def compute_total_pages(last_page: Any, cap: int = MAX_PAGES) -> int:
    """Trust the explorer's lastPage, but never report more than `cap` pages."""
    try:
        pages = int(last_page)
    except (ValueError, TypeError):
        pages = 1
    return max(1, min(pages, cap))


def is_transfer(txn: Transaction) -> bool:
    """True when the explorer tagged the transaction as a transfer."""
    return "transfer" in (txn.operations or "").lower()


# ── Display helpers ───────────────────────────────────────────────────────────


def short_address(address: str) -> str:
    """Return truncated address for display: 0x04a3...9f2c"""
    if len(address) > 12:
        return f"{address[:6]}...{address[-4:]}"
    return address


def format_fee(fee_raw: str, places: int = 6, unit: str = "ETH") -> str | None:
    """
    Render a raw fee (smallest unit) as a decimal amount.

    '1000000000000000' → '0.001000 ETH'
    '' → None
    """
    if not fee_raw:
        return None
    try:
        value = Decimal(fee_raw) / Decimal(10**FEE_DECIMALS)
    except (InvalidOperation, ValueError):
        return None
    return f"{value:.{places}f} {unit}"


def is_valid_address(address: str) -> bool:
    """Starknet address check: 0x prefix, 64–66 characters. No network calls."""
    clean = (address or "").strip()
    if not clean.startswith("0x"):
        return False
    return 64 <= len(clean) <= 66
