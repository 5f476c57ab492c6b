"""Two-tier name matching shared by extraction and dispatch.

Free-text captures are imprecise ("zephyr" for "Zephyr Migration",
"Zephyr Migration project" for "Zephyr Migration"). Matching prefers an
exact case-insensitive hit and falls back to substring containment in
either direction.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

T = TypeVar("T")


def match_name(
    name: str,
    candidates: Iterable[T],
    key: Callable[[T], str] = str,  # type: ignore[assignment]
) -> T | None:
    """Find the best candidate for a user-typed name.

    Args:
        name: Name as captured from the prompt
        candidates: Objects (or plain strings) to match against
        key: Extracts the comparable name from a candidate

    Returns:
        The exact case-insensitive match if any, else the first candidate
        whose name contains or is contained by ``name``, else None.
    """
    needle = name.strip().lower()
    if not needle:
        return None

    pool = list(candidates)

    for candidate in pool:
        if key(candidate).strip().lower() == needle:
            return candidate

    for candidate in pool:
        hay = key(candidate).strip().lower()
        if hay and (needle in hay or hay in needle):
            return candidate

    return None


__all__ = ["match_name"]
