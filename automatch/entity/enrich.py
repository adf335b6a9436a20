"""CDE enrichment: derive matching preferences from allocatee text fields.

CDE rows sourced from the CDFI Fund allocatee data carry free text
(predominant market, predominant financing, innovative activities) and a
non-metro commitment percentage, but few explicit preferences. The scoring
engine expects those preferences to be filled in already; this pass derives
them. Explicit values on the record always win.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from automatch.score.normalize import market_state_tokens, to_number
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables, sectors_for

logger = logging.getLogger(__name__)

# Non-metro commitment (percent) at or above which a CDE counts as rural-focused
RURAL_COMMITMENT_MIN = 40

NATIVE_AMERICAN_KEYWORDS = ("indian country", "tribal")
SMALL_DEAL_KEYWORDS = ("small dollar",)
UTS_KEYWORDS = ("targeting identified states", "underserved")
MINORITY_KEYWORDS = ("minority", "african", "hispanic", "latino")


def is_missing(value: Any) -> bool:
    """
    Check whether a record value is absent.

    None, NaN, blank strings and empty sequences (lists, tuples, numpy arrays)
    are all missing; False and 0 are not.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if hasattr(value, "__len__") and not isinstance(value, Mapping):
        return len(value) == 0
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _text(value: Any) -> str:
    if is_missing(value) or not isinstance(value, str):
        return ""
    return value.lower()


def _mentions(text: str, keywords) -> bool:
    return any(kw in text for kw in keywords)


def detect_focus_flags(innovative_activities: Optional[str], non_metro_commitment: Any) -> Dict[str, bool]:
    """
    Derive focus flags from innovative-activities text and non-metro commitment.

    Args:
        innovative_activities: Free text from the allocatee record
        non_metro_commitment: Percent of activity committed to non-metro areas

    Returns:
        Dict with rural_focus, native_american_focus, small_deal_fund,
        uts_focus and minority_focus
    """
    activities = _text(innovative_activities)
    return {
        "rural_focus": to_number(non_metro_commitment) >= RURAL_COMMITMENT_MIN,
        "native_american_focus": _mentions(activities, NATIVE_AMERICAN_KEYWORDS),
        "small_deal_fund": _mentions(activities, SMALL_DEAL_KEYWORDS),
        "uts_focus": _mentions(activities, UTS_KEYWORDS),
        "minority_focus": _mentions(activities, MINORITY_KEYWORDS),
    }


def derive_target_sectors(
    predominant_financing: Optional[str],
    predominant_market: Optional[str],
    innovative_activities: Optional[str],
    tables: ReferenceTables = DEFAULT_TABLES
) -> List[str]:
    """
    Map financing, market and activities text onto the canonical sector vocabulary.

    Args:
        predominant_financing: e.g. "Real Estate Financing - Community Facilities"
        predominant_market: Market description or state list
        innovative_activities: Free text

    Returns:
        De-duplicated sector labels in first-seen order
    """
    sources = {
        "financing": _text(predominant_financing),
        "activities": _text(innovative_activities),
        "market": _text(predominant_market),
    }

    sectors: List[str] = []
    for source, text in sources.items():
        if not text:
            continue
        for sector in sectors_for(source, text, tables):
            if sector not in sectors:
                sectors.append(sector)
    return sectors


def enrich_cde(record: Mapping[str, Any], tables: ReferenceTables = DEFAULT_TABLES) -> Dict[str, Any]:
    """
    Return a copy of a raw CDE record with derived preferences filled in.

    Only absent fields are filled. Derived flags are set only when the
    evidence says yes; a missing flag stays missing so the engine treats it
    as "no preference".

    Args:
        record: Raw CDE row (snake_case keys)
        tables: Reference tables with the sector keyword rules

    Returns:
        New dict; ``record`` is not modified
    """
    enriched = dict(record)

    if is_missing(enriched.get("primary_states")):
        states = market_state_tokens(enriched.get("predominant_market"))
        if states:
            enriched["primary_states"] = states

    flags = detect_focus_flags(enriched.get("innovative_activities"), enriched.get("non_metro_commitment"))
    for key in ("rural_focus", "native_american_focus", "small_deal_fund", "uts_focus"):
        if is_missing(enriched.get(key)) and flags[key]:
            enriched[key] = True

    if is_missing(enriched.get("target_sectors")):
        sectors = derive_target_sectors(
            enriched.get("predominant_financing"),
            enriched.get("predominant_market"),
            enriched.get("innovative_activities"),
            tables,
        )
        if sectors:
            enriched["target_sectors"] = sectors

    filled = [key for key in enriched if is_missing(record.get(key)) and not is_missing(enriched[key])]
    if filled:
        logger.debug(f"Enriched CDE {record.get('name') or record.get('id')}: {filled}")
    return enriched
