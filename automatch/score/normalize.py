"""Text, state and value normalization helpers for match scoring."""
import math
import re
from enum import Enum
from typing import Any, FrozenSet, List, NamedTuple, Optional

from automatch.score.tables import DEFAULT_TABLES, ReferenceTables

_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0"}
_STATE_TOKEN = re.compile(r"^[A-Z]{2}$")
_MARKET_SPLIT = re.compile(r"[,;]+")
_NUMERIC_NOISE = re.compile(r"[$,%\s]")


class TriState(Enum):
    """Three-valued flag: an explicit yes, an explicit no, or not stated."""

    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"

    @property
    def is_known(self) -> bool:
        return self is not TriState.UNKNOWN

    def resolve(self, default: bool) -> bool:
        """Collapse to a bool, using ``default`` when the value is unknown."""
        if self is TriState.UNKNOWN:
            return default
        return self is TriState.YES


class StateInfo(NamedTuple):
    abbrev: str
    name: str


def _scalar(value: Any) -> Any:
    # numpy scalars (np.bool_, np.float64) coming out of pandas frames
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (TypeError, ValueError):
            return value
    return value


def normalize_text(value: Optional[str]) -> str:
    """
    Normalize free text for comparison.

    Lower-cases, turns underscores and hyphens into spaces, collapses runs of
    whitespace and trims, so "Real_Estate", "real-estate" and "REAL  ESTATE"
    all compare equal.

    Args:
        value: Raw text (None allowed)

    Returns:
        Normalized text, empty string for None/blank input
    """
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = str(value).lower()
    text = re.sub(r"[_-]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def resolve_state(value: Optional[str], tables: ReferenceTables = DEFAULT_TABLES) -> Optional[StateInfo]:
    """
    Resolve a state abbreviation or full name (case-insensitive).

    Args:
        value: "IL", "il", "Illinois", " illinois "
        tables: Reference tables with the state name mapping

    Returns:
        StateInfo(abbrev, name) or None when unrecognized
    """
    if not value or not isinstance(value, str):
        return None

    upper = value.strip().upper()
    lower = re.sub(r"\s+", " ", value.strip().lower())

    if upper in tables.state_names:
        return StateInfo(upper, tables.state_names[upper])

    abbrev = tables.names_to_abbrev.get(lower)
    if abbrev:
        return StateInfo(abbrev, lower)
    return None


def market_state_tokens(market: Optional[str]) -> List[str]:
    """Extract standalone two-letter codes from comma/semicolon separated market text."""
    if not market or not isinstance(market, str):
        return []
    tokens = [token.strip().upper() for token in _MARKET_SPLIT.split(market)]
    return [token for token in tokens if _STATE_TOKEN.match(token)]


def mentions_state_name(
    text: Optional[str],
    state_name: str,
    tables: ReferenceTables = DEFAULT_TABLES
) -> bool:
    """
    Check whether ``text`` contains the full state name as a whole word.

    Longer state names that contain it are ignored, so "West Virginia" does
    not count as a mention of Virginia.
    """
    if not text or not isinstance(text, str) or not state_name:
        return False
    pattern = r"\b" + re.escape(state_name) + r"\b"
    text = text.lower()
    for other in tables.state_names.values():
        if other != state_name and re.search(pattern, other):
            text = re.sub(r"\b" + re.escape(other) + r"\b", " ", text)
    return re.search(pattern, text) is not None


def underserved_states_for(year: Optional[int], tables: ReferenceTables = DEFAULT_TABLES) -> Optional[FrozenSet[str]]:
    """Underserved state set for an allocation year; None when the year is not in the table."""
    return tables.underserved_for(year)


def is_underserved_state(
    state_abbrev: Optional[str],
    year: Optional[int],
    tables: ReferenceTables = DEFAULT_TABLES
) -> bool:
    """
    Check whether a state is on the underserved list for an allocation year.

    Unknown years resolve to an empty set, so this returns False for them;
    the UTS criterion treats an unknown year as a pass on its own.
    """
    if not state_abbrev:
        return False
    states = underserved_states_for(year, tables) or frozenset()
    return state_abbrev.strip().upper() in states


def to_number(value: Any) -> float:
    """
    Coerce a numeric-ish value to float.

    Strips currency symbols, thousands separators and percent signs from
    strings. Missing, malformed and NaN values become 0.
    """
    number = _parse_number(value)
    return 0.0 if number is None else number


def to_int(value: Any) -> Optional[int]:
    """Coerce to int, None when missing or malformed."""
    number = _parse_number(value)
    return None if number is None else int(number)


def _parse_number(value: Any) -> Optional[float]:
    value = _scalar(value)
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        value = _NUMERIC_NOISE.sub("", value)
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_flag(value: Any) -> Optional[bool]:
    """
    Coerce a loosely typed flag to an optional bool.

    Args:
        value: bool, number, "yes"/"no"/"true"/"false"/"1"/"0", or None

    Returns:
        True/False, or None when missing or unrecognized
    """
    value = _scalar(value)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def to_tristate(value: Any) -> TriState:
    """Map True/False/None (or flag-like values) onto TriState."""
    if isinstance(value, TriState):
        return value
    flag = to_flag(value)
    if flag is None:
        return TriState.UNKNOWN
    return TriState.YES if flag else TriState.NO


def is_program_name(value: Optional[str], tables: ReferenceTables = DEFAULT_TABLES) -> bool:
    """True when the text names a tax-credit program (NMTC, HTC, ...) rather than a project type."""
    text = normalize_text(value)
    return bool(text) and text in tables.program_names


def matches_real_estate_keywords(project_type: Optional[str], tables: ReferenceTables = DEFAULT_TABLES) -> bool:
    text = normalize_text(project_type)
    if not text:
        return False
    return any(normalize_text(kw) in text for kw in tables.real_estate_keywords)


def classify_real_estate(
    venture_type: Optional[str],
    is_real_estate: TriState = TriState.UNKNOWN,
    project_type: Optional[str] = None,
    tables: ReferenceTables = DEFAULT_TABLES
) -> TriState:
    """
    Classify a deal as real estate (YES), operating business (NO) or unknown.

    An explicit venture type wins; then an already-resolved ``is_real_estate``;
    then a keyword match of the project type. Keywords can only mark a deal as
    real estate, never as a business.

    Args:
        venture_type: Free-text venture type ("Real Estate", "business")
        is_real_estate: Caller-resolved tri-state
        project_type: Free-text project type or sector
        tables: Reference tables with the keyword list

    Returns:
        TriState classification
    """
    venture = normalize_text(venture_type)
    if "real estate" in venture:
        return TriState.YES
    if "business" in venture or "operating" in venture:
        return TriState.NO

    if is_real_estate.is_known:
        return is_real_estate

    if matches_real_estate_keywords(project_type, tables):
        return TriState.YES
    return TriState.UNKNOWN


def canonical_sector(label: Optional[str], tables: ReferenceTables = DEFAULT_TABLES) -> Optional[str]:
    """Map a sector label onto the canonical vocabulary spelling, keeping unknown labels as given."""
    if label is None:
        return None
    text = normalize_text(label)
    if not text:
        return None
    for sector in tables.sector_vocabulary:
        if normalize_text(sector) == text:
            return sector
    return str(label).strip()


def to_text(value: Any) -> Optional[str]:
    """Coerce to stripped text; None for missing, NaN or blank values."""
    value = _scalar(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None
