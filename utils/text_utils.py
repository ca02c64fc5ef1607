"""
Text utilities for variety names.

Used to group trays by variety and to match the free-text missing-variety
list of a gap against tray names.
"""

import unicodedata
from typing import Optional


def variety_key(name: Optional[str]) -> str:
    """
    Normalize a variety name for grouping/comparison.

    - "Sunflower Shoots " → "sunflower shoots"
    - "Jalapeño" → "jalapeno"

    Args:
        name: Display name (may have accents, mixed case)

    Returns:
        Lowercase ASCII string, or "" if input is empty
    """
    if not name:
        return ""

    name = name.strip()
    if not name:
        return ""

    # NFD separates base chars from accents; drop the combining marks
    normalized = unicodedata.normalize("NFD", name)
    ascii_name = "".join(
        c for c in normalized
        if unicodedata.category(c) != "Mn"
    )

    return " ".join(ascii_name.lower().split())


def parse_missing_varieties(missing: Optional[str]) -> list[str]:
    """
    Split the comma-joined missing_varieties column into name tokens.

    Empty tokens are dropped; original casing is kept for display.
    """
    if not missing:
        return []
    return [token.strip() for token in missing.split(",") if token.strip()]


def names_overlap(first: Optional[str], second: Optional[str]) -> bool:
    """
    Fuzzy name match: either normalized name contains the other.

    Best-effort only. Unrelated varieties sharing a word ("red" in "Red
    Cabbage" and "Red Amaranth") do not match unless one whole name is a
    substring of the other, but "pea" does match "chickpea".
    """
    a = variety_key(first)
    b = variety_key(second)
    if not a or not b:
        return False
    return a in b or b in a
