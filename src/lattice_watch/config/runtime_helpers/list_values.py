"""Splitting of delimited setting values."""

from __future__ import annotations


def split_list(raw_value: str, separator: str = ",", *, unique: bool = True) -> tuple[str, ...]:
    """Split ``raw_value`` into stripped, non-blank items in their original order."""
    parts = raw_value.split(separator) if separator else [raw_value]
    items = [part.strip() for part in parts if part.strip()]
    if unique:
        items = list(dict.fromkeys(items))
    return tuple(items)
