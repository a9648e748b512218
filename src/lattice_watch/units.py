"""Conversion between raw ledger units and display (XNO) units."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

RAW_PER_NANO = 10**30
_PRECISION_DIGITS = 80


def raw_to_nano(raw: str) -> str:
    """
    Convert an integer amount of raw units into a decimal XNO string.

    The result never uses exponent notation and carries no trailing zeros,
    e.g. ``"1000000000000000000000000000000"`` becomes ``"1"`` and
    ``"1500000000000000000000000000"`` becomes ``"0.0015"``.

    Raises:
        ValueError: If ``raw`` is not a non-negative integer string
    """
    text = raw.strip()
    if not text.isdigit():
        raise ValueError(f"Raw amount must be a non-negative integer string (got {raw!r})")

    with localcontext() as ctx:
        ctx.prec = _PRECISION_DIGITS
        try:
            value = Decimal(text) / Decimal(RAW_PER_NANO)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid raw amount {raw!r}") from exc

        formatted = format(value, "f")
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted


__all__ = ["RAW_PER_NANO", "raw_to_nano"]
