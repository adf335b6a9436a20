"""Fuzzy header matching utilities."""
from typing import Dict, List, Optional, Sequence, Union

from rapidfuzz import fuzz

HeaderSpec = Union[str, Sequence[str]]


def _aliases(expected: HeaderSpec) -> List[str]:
    if isinstance(expected, str):
        return [expected]
    return list(expected)


def find_header_match(
    target: str,
    candidate_headers: list,
    threshold: float = 80.0
) -> Optional[str]:
    """
    Find the best matching header using fuzzy string matching.

    Args:
        target: The header name to match
        candidate_headers: List of candidate header names
        threshold: Minimum similarity score (0-100)

    Returns:
        Best matching header name or None if below threshold
    """
    if not candidate_headers:
        return None

    best_match = None
    best_score = 0.0

    for header in candidate_headers:
        score = fuzz.ratio(target.upper(), str(header).upper())
        if score > best_score:
            best_score = score
            best_match = header

    if best_score >= threshold:
        return best_match
    return None


def map_headers(
    expected_headers: Dict[str, HeaderSpec],
    actual_headers: list,
    threshold: float = 80.0
) -> Dict[str, Optional[str]]:
    """
    Map expected header names to actual headers.

    Matching runs in three passes: exact (case-insensitive), then substring
    (an alias contained in the actual header), then fuzzy. Each actual header
    is used at most once.

    Args:
        expected_headers: Dict mapping canonical names to an expected header
            name or a list of accepted aliases
        actual_headers: List of actual header names from file
        threshold: Minimum similarity score for fuzzy matching

    Returns:
        Dict mapping canonical names to actual header names (missing if not found)
    """
    mapping = {}
    used_headers = set()

    # First pass: exact matches (case-insensitive)
    for canonical, expected in expected_headers.items():
        for alias in _aliases(expected):
            match = next(
                (a for a in actual_headers
                 if str(a).strip().upper() == alias.upper() and a not in used_headers),
                None
            )
            if match is not None:
                mapping[canonical] = match
                used_headers.add(match)
                break

    # Second pass: alias appears inside a longer header
    for canonical, expected in expected_headers.items():
        if canonical in mapping:
            continue
        for alias in _aliases(expected):
            match = next(
                (a for a in actual_headers
                 if alias.upper() in str(a).upper() and a not in used_headers),
                None
            )
            if match is not None:
                mapping[canonical] = match
                used_headers.add(match)
                break

    # Third pass: fuzzy matches for unmapped headers
    for canonical, expected in expected_headers.items():
        if canonical in mapping:
            continue
        remaining = [a for a in actual_headers if a not in used_headers]
        for alias in _aliases(expected):
            match = find_header_match(alias, remaining, threshold)
            if match is not None:
                mapping[canonical] = match
                used_headers.add(match)
                break

    return mapping
