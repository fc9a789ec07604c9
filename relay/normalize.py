"""Title normalization applied before titles become lookup keys."""

from __future__ import annotations

import re

__all__ = ["normalize_title", "remove_timestamp_prefix"]

# "11:55 am ", "6:10PM  " ... at the very start of a title.
_TIMESTAMP_PREFIX = re.compile(r"^\d{1,2}:\d{2}\s*(?:am|pm)\s+", re.IGNORECASE)


def remove_timestamp_prefix(text: str) -> str:
    """Strip one leading clock-time prefix.

    >>> remove_timestamp_prefix("11:55 am blah blah blah")
    'blah blah blah'
    >>> remove_timestamp_prefix("6:10 pm Week 1: ISA design")
    'Week 1: ISA design'
    """
    return _TIMESTAMP_PREFIX.sub("", text, count=1)


def normalize_title(text: str) -> str:
    """Trim, then strip a timestamp prefix."""
    return remove_timestamp_prefix(text.strip()).strip()
