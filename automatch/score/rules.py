"""Scoring rules and constants."""
from typing import Dict, Tuple

# Binary criteria, in evaluation order; each is worth exactly one point
CRITERIA: Tuple[str, ...] = (
    "geographic",
    "financing",
    "urban_rural",
    "sector",
    "deal_size",
    "small_deal_fund",
    "severely_distressed",
    "distress_percentile",
    "minority_focus",
    "uts_focus",
    "entity_type",
    "owner_occupied",
    "tribal",
    "allocation_type",
    "has_allocation",
)

TOTAL_CRITERIA = len(CRITERIA)

# Hard eliminators, checked in this order before any criterion
GATES: Tuple[str, ...] = ("geographic", "financing")

# Requests at or under this amount count as small deals
SMALL_DEAL_MAX = 5_000_000

# Strength bands: excellent=80-100, good=65-79, fair=50-64, weak<50
MATCH_THRESHOLDS: Dict[str, int] = {
    "excellent": 80,
    "good": 65,
    "fair": 50,
    "weak": 0,
}

MAX_SCORE = 100

CLIENT_ESTIMATE_MARKER = "(client-side estimate)"


def match_strength(score: int) -> str:
    """Bucket a 0-100 score into excellent/good/fair/weak."""
    if score >= MATCH_THRESHOLDS["excellent"]:
        return "excellent"
    if score >= MATCH_THRESHOLDS["good"]:
        return "good"
    if score >= MATCH_THRESHOLDS["fair"]:
        return "fair"
    return "weak"


def points_to_score(points: int) -> int:
    """Convert passed-criteria points to a 0-100 percentage (half rounds up)."""
    points = max(0, min(points, TOTAL_CRITERIA))
    return int(points * MAX_SCORE / TOTAL_CRITERIA + 0.5)
