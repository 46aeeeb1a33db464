"""
Canonical parser for court identifiers.

Handles both string ("1,5,6") and list (["Court 1", "Court 2"]) inputs so
labels are never split character by character (list("1,5,6") -> ['1', ',', ...]).
"""
from typing import List, Optional, Union


def parse_court_names(court_names: Optional[Union[str, List[str]]]) -> List[str]:
    """
    Normalize court names to an ordered list of unique, non-empty strings.

    - None or "" -> []
    - String (e.g. "1,5,6") -> split on commas, strip whitespace, drop empties -> ["1","5","6"]
    - List (e.g. ["A", " B ", "A"]) -> coerce each to str(x).strip(), drop empties and repeats -> ["A","B"]
    """
    if court_names is None:
        return []
    if isinstance(court_names, str):
        raw = court_names.split(",")
    elif isinstance(court_names, (list, tuple)):
        raw = [str(x) for x in court_names]
    else:
        return []

    courts: List[str] = []
    for name in raw:
        name = name.strip()
        if name and name not in courts:
            courts.append(name)
    return courts
