"""Versioned reference tables consumed by the match engine.

The engine never reads module globals directly: every scoring entry point takes
a ``tables`` argument that defaults to ``DEFAULT_TABLES``. A deployment can swap
in a newer CDFI Fund underserved-state list (or keyword vocabulary) by loading a
JSON override once at process start with ``ReferenceTables.from_json``.
"""
import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

TABLES_VERSION = "2025.1"

# State abbreviation -> lower-case full name (50 states, DC and NMTC territories)
STATE_NAMES: Dict[str, str] = {
    "AL": "alabama", "AK": "alaska", "AZ": "arizona", "AR": "arkansas", "CA": "california",
    "CO": "colorado", "CT": "connecticut", "DE": "delaware", "FL": "florida", "GA": "georgia",
    "HI": "hawaii", "ID": "idaho", "IL": "illinois", "IN": "indiana", "IA": "iowa",
    "KS": "kansas", "KY": "kentucky", "LA": "louisiana", "ME": "maine", "MD": "maryland",
    "MA": "massachusetts", "MI": "michigan", "MN": "minnesota", "MS": "mississippi", "MO": "missouri",
    "MT": "montana", "NE": "nebraska", "NV": "nevada", "NH": "new hampshire", "NJ": "new jersey",
    "NM": "new mexico", "NY": "new york", "NC": "north carolina", "ND": "north dakota", "OH": "ohio",
    "OK": "oklahoma", "OR": "oregon", "PA": "pennsylvania", "RI": "rhode island", "SC": "south carolina",
    "SD": "south dakota", "TN": "tennessee", "TX": "texas", "UT": "utah", "VT": "vermont",
    "VA": "virginia", "WA": "washington", "WV": "west virginia", "WI": "wisconsin", "WY": "wyoming",
    "DC": "district of columbia",
    "PR": "puerto rico", "VI": "virgin islands", "AS": "american samoa", "GU": "guam",
    "MP": "northern mariana islands",
}

# CDFI Fund underserved/targeted states by NMTC allocation round
UNDERSERVED_STATES_BY_YEAR: Dict[int, Tuple[str, ...]] = {
    2025: ("AZ", "CA", "CO", "CT", "FL", "KS", "NC", "TX", "VA", "WV", "PR"),
    2024: ("AZ", "CA", "CO", "CT", "FL", "KS", "NC", "TX", "VA", "WV", "PR"),
    2023: ("AZ", "CA", "CO", "FL", "KS", "NV", "NC", "TX", "VA", "WV", "PR"),
    2022: ("AZ", "CA", "CO", "FL", "NV", "NC", "TN", "TX", "VA", "WV", "VI", "AS", "GU", "MP"),
}

# Project-type keywords that mark a deal as real estate (normalized text)
REAL_ESTATE_KEYWORDS: Tuple[str, ...] = (
    "community facility", "community center", "healthcare", "medical", "clinic", "hospital",
    "education", "school", "charter", "housing", "residential", "affordable", "senior",
    "shelter", "homeless", "rescue", "mission", "childcare", "daycare", "industrial",
    "manufacturing", "warehouse", "retail", "commercial", "office", "mixed use",
    "renovation", "construction", "development", "building", "facility", "real estate",
)

# Tax-credit program names; never valid as a project type
PROGRAM_NAMES: Tuple[str, ...] = (
    "nmtc", "htc", "lihtc", "oz", "new markets tax credit", "new markets tax credits",
    "historic tax credit", "historic tax credits", "low income housing tax credit",
    "opportunity zone", "opportunity zones",
)

# Canonical sector vocabulary shared with the deal intake form
SECTOR_VOCABULARY: Tuple[str, ...] = (
    "Healthcare/Medical", "Education/Schools", "Housing/Residential",
    "Industrial/Manufacturing", "Retail/Commercial", "Food Access/Grocery",
    "Childcare/Early Education", "Senior Services", "Community Facility",
    "Mixed-Use", "Other",
)

# (source field, trigger keywords, sectors implied); sources are the CDE's
# predominant financing, predominant market and innovative activities text
SECTOR_KEYWORD_RULES: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("financing", ("community", "facilit"), (
        "Community Facility", "Healthcare/Medical", "Education/Schools",
        "Childcare/Early Education", "Senior Services", "Food Access/Grocery",
    )),
    ("financing", ("industrial", "manufactur"), ("Industrial/Manufacturing",)),
    ("financing", ("mixed",), ("Mixed-Use", "Retail/Commercial", "Housing/Residential")),
    ("financing", ("housing", "for-sale"), ("Housing/Residential",)),
    ("financing", ("office",), ("Retail/Commercial",)),
    ("financing", ("retail",), ("Retail/Commercial",)),
    ("financing", ("operating", "business"), ("Retail/Commercial", "Industrial/Manufacturing")),
    ("financing", ("other real estate",), ("Mixed-Use", "Retail/Commercial")),
    ("activities", ("non-real estate",), ("Retail/Commercial", "Industrial/Manufacturing")),
    ("market", ("health", "medical"), ("Healthcare/Medical",)),
    ("market", ("education", "school"), ("Education/Schools",)),
    ("market", ("food", "grocery"), ("Food Access/Grocery",)),
    ("market", ("child", "daycare"), ("Childcare/Early Education",)),
    ("market", ("senior", "elder"), ("Senior Services",)),
)

SectorRule = Tuple[str, Tuple[str, ...], Tuple[str, ...]]


@dataclass(frozen=True)
class ReferenceTables:
    """Immutable bundle of lookup tables used by normalization and scoring."""

    version: str = TABLES_VERSION
    state_names: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(STATE_NAMES)))
    underserved_states: Mapping[int, FrozenSet[str]] = field(
        default_factory=lambda: MappingProxyType(
            {year: frozenset(states) for year, states in UNDERSERVED_STATES_BY_YEAR.items()}
        )
    )
    real_estate_keywords: Tuple[str, ...] = REAL_ESTATE_KEYWORDS
    program_names: FrozenSet[str] = frozenset(PROGRAM_NAMES)
    sector_vocabulary: Tuple[str, ...] = SECTOR_VOCABULARY
    sector_rules: Tuple[SectorRule, ...] = SECTOR_KEYWORD_RULES

    @property
    def names_to_abbrev(self) -> Dict[str, str]:
        return {name: abbrev for abbrev, name in self.state_names.items()}

    def underserved_for(self, year: Optional[int]) -> Optional[FrozenSet[str]]:
        """Return the underserved states for an allocation year, or None if the year is not tabled."""
        if year is None:
            return None
        return self.underserved_states.get(year)

    @classmethod
    def from_mapping(cls, data: Mapping) -> "ReferenceTables":
        """
        Build tables from a plain mapping, keeping built-in values for absent keys.

        Args:
            data: Mapping with any of ``version``, ``underserved_states_by_year``,
                ``state_names``, ``real_estate_keywords``, ``program_names``,
                ``sector_vocabulary``, ``sector_rules``

        Returns:
            ReferenceTables instance
        """
        tables = cls()
        overrides = {}

        if "version" in data:
            overrides["version"] = str(data["version"])
        if "underserved_states_by_year" in data:
            overrides["underserved_states"] = MappingProxyType({
                int(year): frozenset(s.strip().upper() for s in states)
                for year, states in data["underserved_states_by_year"].items()
            })
        if "state_names" in data:
            overrides["state_names"] = MappingProxyType({
                abbrev.strip().upper(): name.strip().lower()
                for abbrev, name in data["state_names"].items()
            })
        if "real_estate_keywords" in data:
            overrides["real_estate_keywords"] = tuple(kw.lower() for kw in data["real_estate_keywords"])
        if "program_names" in data:
            overrides["program_names"] = frozenset(p.lower() for p in data["program_names"])
        if "sector_vocabulary" in data:
            overrides["sector_vocabulary"] = tuple(data["sector_vocabulary"])
        if "sector_rules" in data:
            overrides["sector_rules"] = tuple(
                (rule["source"], tuple(rule["keywords"]), tuple(rule["sectors"]))
                for rule in data["sector_rules"]
            )

        return replace(tables, **overrides)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "ReferenceTables":
        """
        Load tables from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Reference tables not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        tables = cls.from_mapping(data)
        logger.info(f"Loaded reference tables version {tables.version} from {path}")
        return tables


DEFAULT_TABLES = ReferenceTables()


def load_tables(path: Optional[Union[str, Path]] = None) -> ReferenceTables:
    """Return the override tables at ``path`` when given, else the built-in defaults."""
    if path:
        return ReferenceTables.from_json(path)
    return DEFAULT_TABLES


def sectors_for(source: str, text: str, tables: ReferenceTables = DEFAULT_TABLES) -> Iterable[str]:
    """Yield canonical sectors implied by lower-cased ``text`` for one source field."""
    for rule_source, keywords, sectors in tables.sector_rules:
        if rule_source != source:
            continue
        if any(kw in text for kw in keywords):
            yield from sectors
