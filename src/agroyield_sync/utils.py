"""Utility functions for the AgroYield sync layer."""

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from hexbytes import HexBytes

from .constants import CONTENT_REF_SHAPES, TOKEN_DECIMALS
from .exceptions import ValidationError

GENERIC_FAILURE = "Transaction failed"


def to_units(value: Decimal | float | int | str, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a decimal token amount to its fixed-point integer representation."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("Amount must be numeric", field="amount", value=value) from exc

    if not amount.is_finite():
        raise ValidationError("Amount must be finite", field="amount", value=value)
    if amount < 0:
        raise ValidationError("Amount cannot be negative", field="amount", value=value)

    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount has more than {decimals} decimal places", field="amount", value=value
        )

    return int(scaled)


def from_units(units: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Convert a fixed-point integer to Decimal."""
    return Decimal(int(units)).scaleb(-decimals)


def format_address(address: str | None, chars: int = 4) -> str:
    """Shorten an address for display, e.g. ``0x1234...abcd``."""
    if not address:
        return ""
    return f"{address[: 2 + chars]}...{address[-chars:]}"


def is_valid_content_address(ref: Any) -> bool:
    """Return True when ``ref`` looks like a resolvable content address."""
    if not ref or not isinstance(ref, str):
        return False
    return any(
        ref.startswith(prefix) and len(ref) >= length for prefix, length in CONTENT_REF_SHAPES
    )


def record_field(record: Any, name: str, index: int | None = None) -> Any:
    """Read a field from a decoded ledger record (mapping, named tuple or plain tuple)."""
    if isinstance(record, Mapping):
        return record[name]
    if hasattr(record, name):
        return getattr(record, name)
    if index is not None and isinstance(record, Sequence):
        return record[index]
    raise ValidationError(f"Ledger record is missing '{name}'", field=name, value=record)


def describe_failure(exc: BaseException, default: str = GENERIC_FAILURE) -> str:
    """Return a concise human-readable reason for a failed ledger interaction."""
    reason = getattr(exc, "reason", None)
    if isinstance(reason, str) and reason:
        return reason

    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message

    text = str(exc).strip()
    return text or default


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt
