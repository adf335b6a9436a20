"""Human-readable reason generation."""
from typing import Any, List, Optional, Tuple


def format_amount(amount: float) -> str:
    """
    Format a dollar amount compactly.

    Args:
        amount: Dollar amount

    Returns:
        "$12M", "$8.5M", "$750K" or "$900"
    """
    if amount >= 1_000_000:
        return f"${round(amount / 1_000_000, 1):g}M"
    if amount >= 1_000:
        return f"${round(amount / 1_000):g}K"
    return f"${amount:,.0f}"


def format_reason_code(code: str, value: Any = None) -> str:
    """
    Format a reason code into human-readable text.

    Args:
        code: Reason code (e.g., "GEO_STATE", "DEAL_SIZE")
        value: Optional value to include in reason

    Returns:
        Human-readable reason string
    """
    reason_map = {
        "GEO_NATIONAL": "National coverage",
        "GEO_STATE": f"Geographic match: {value or 'state'} in service area",
        "FIN_OWNER_OCCUPIED": "Financing match: owner-occupied project",
        "FIN_REAL_ESTATE": "Financing match: Real Estate",
        "FIN_BUSINESS": "Financing match: Business",
        "RURAL": "Rural focus match",
        "URBAN": "Urban focus match",
        "SECTOR": f"Sector match: {value}",
        "SECTOR_MARKET": f"Sector match: {value} in predominant market",
        "DEAL_SIZE": f"Deal size within range ({value})",
        "SMALL_DEAL": "Small deal fund",
        "SEVERELY_DISTRESSED": "Severely distressed tract",
        "DISTRESS": f"Distress percentile meets minimum ({value})",
        "MINORITY": "Minority-owned focus match",
        "UTS": f"Underserved target state ({value})" if value else "Underserved target state",
        "NONPROFIT_PREFERRED": "Nonprofit preferred match",
        "NONPROFIT_REQUIRED": "Nonprofit entity eligible",
        "OWNER_OCCUPIED": "Owner-occupied preferred",
        "TRIBAL": "Tribal/AIAN focus match",
        "ALLOCATION_TYPE": f"Allocation type match: {value}",
        "HAS_ALLOCATION": f"Allocation available ({value} remaining)",
    }

    return reason_map.get(code, code)


def compose_reasons(reason_codes: List[Tuple[str, Optional[Any]]]) -> List[str]:
    """
    Compose human-readable reasons from (code, value) pairs, keeping order.

    Args:
        reason_codes: Reason codes with optional values, in criterion order

    Returns:
        List of reason strings
    """
    return [format_reason_code(code, value) for code, value in reason_codes]


def cap_reasons(reasons: List[str], limit: Optional[int]) -> List[str]:
    """Trim a reasons list for display; ``None`` keeps everything."""
    if limit is None:
        return list(reasons)
    return list(reasons[:max(limit, 0)])
