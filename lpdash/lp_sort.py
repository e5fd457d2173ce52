from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

from lpdash.schema import NONE_LP_NUMBER

LP_PATTERN = re.compile(r"LP(\d+)(?:-(\d+))?", re.IGNORECASE)
CHUNKS = re.compile(r"(\d+)")

Chunk = Tuple[int, object]


def _natural_key(value: str) -> Tuple[Chunk, ...]:
    # Digit runs compare numerically and sort before text, case-insensitively.
    out: List[Chunk] = []
    for part in CHUNKS.split(value.casefold()):
        if not part:
            continue
        out.append((0, int(part)) if part.isdecimal() else (1, part))
    return tuple(out)


def lp_sort_key(value: Optional[str]) -> Tuple[int, Tuple[Chunk, ...]]:
    """Sort key for LP identifiers: ``LP_None``/blank, then LP2 < LP10 < LP10-1.

    The first ``LP<n>[-<m>]`` found anywhere in the value decides the order, so
    ``LP3 (new)`` sorts as LP3. Equal numbers fall back to the natural key of
    the whole value.
    """
    if value is None or value == "" or value == NONE_LP_NUMBER:
        return (0, ())
    text = str(value)
    match = LP_PATTERN.search(text)
    if match:
        primary = int(match.group(1))
        secondary = int(match.group(2)) if match.group(2) else 0
        return (1, ((1, "lp"), (0, primary), (0, secondary)) + _natural_key(text))
    return (1, _natural_key(text))


def sort_lp_numbers(lp_numbers: Iterable[Optional[str]]) -> List[Optional[str]]:
    return sorted(lp_numbers, key=lp_sort_key)
