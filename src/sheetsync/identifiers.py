"""
Label to storage-key mapping.

Spreadsheet headers are free text; relational columns are not. Every label
is normalized to a storage key with the same rule on every read and write,
and keys are mapped back to labels by position in the column set, never by
inverting the rule.
"""

import re
from collections.abc import Sequence

_INVALID_KEY_CHARS = re.compile(r"[^a-z0-9_]")

FALLBACK_KEY = "col"


def normalize(label: str) -> str:
    """
    Normalize a column label to a storage key.

    Lowercases, replaces every character outside [a-z0-9_] with an
    underscore, strips leading/trailing underscores, and falls back to
    ``col`` when nothing is left.

    Args:
        label: Human-readable column label

    Returns:
        Storage key used as the relational column name

    Example:
        >>> normalize("Due Date")
        'due_date'
        >>> normalize("% Complete")
        'complete'
    """
    key = _INVALID_KEY_CHARS.sub("_", label.lower()).strip("_")
    return key or FALLBACK_KEY


def storage_keys(column_names: Sequence[str]) -> list[str]:
    """Storage keys for a column set, in column set order."""
    return [normalize(name) for name in column_names]
