"""Deal, CDE and match-result models for the scoring engine."""
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from automatch.score.normalize import TriState, normalize_text, to_flag, to_int, to_number, to_text, to_tristate
from automatch.score.rules import match_strength

_FLAG_FIELDS_DEAL = (
    "severely_distressed", "is_qct", "is_rural", "is_non_profit",
    "is_minority_owned", "is_uts", "is_tribal",
)
_FLAG_FIELDS_CDE = (
    "rural_focus", "urban_focus", "require_severely_distressed", "small_deal_fund",
    "minority_focus", "uts_focus", "nonprofit_preferred", "owner_occupied_preferred",
    "native_american_focus",
)


class DealProfile(BaseModel):
    """Criteria profile of one deal, as read by the engine."""

    model_config = ConfigDict(frozen=True)

    deal_id: Optional[str] = None
    state: Optional[str] = None
    project_type: Optional[str] = None
    sector_category: Optional[str] = None
    venture_type: Optional[str] = None
    allocation_request: float = 0.0
    severely_distressed: Optional[bool] = None
    is_qct: Optional[bool] = None
    distress_score: float = 0.0
    is_rural: Optional[bool] = None
    is_non_profit: Optional[bool] = None
    is_minority_owned: Optional[bool] = None
    is_owner_occupied: TriState = TriState.UNKNOWN
    is_real_estate: TriState = TriState.UNKNOWN
    is_uts: Optional[bool] = None
    is_tribal: Optional[bool] = None
    allocation_type: str = "federal"

    @field_validator("deal_id", "state", "project_type", "sector_category", "venture_type", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return to_text(value)

    @field_validator("allocation_request", "distress_score", mode="before")
    @classmethod
    def _coerce_number(cls, value):
        return max(to_number(value), 0.0)

    @field_validator(*_FLAG_FIELDS_DEAL, mode="before")
    @classmethod
    def _coerce_flag(cls, value):
        return to_flag(value)

    @field_validator("is_owner_occupied", "is_real_estate", mode="before")
    @classmethod
    def _coerce_tristate(cls, value):
        return to_tristate(value)

    @field_validator("allocation_type", mode="before")
    @classmethod
    def _default_allocation_type(cls, value):
        if not normalize_text(value):
            return "federal"
        return str(value).strip()

    @property
    def sector(self) -> Optional[str]:
        """Sector used for matching: the intake sector category, else the project type."""
        return self.sector_category or self.project_type

    @property
    def owner_occupied(self) -> bool:
        # Most deals of this kind are owner-occupied
        return self.is_owner_occupied.resolve(default=True)


class CDEProfile(BaseModel):
    """Capital source profile, already enriched (see automatch.entity.enrich)."""

    model_config = ConfigDict(frozen=True)

    cde_id: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    service_area_type: Optional[str] = None
    primary_states: Tuple[str, ...] = ()
    predominant_market: Optional[str] = None
    predominant_financing: Optional[str] = None
    target_sectors: Tuple[str, ...] = ()
    min_deal_size: float = 0.0
    max_deal_size: Optional[float] = None
    rural_focus: Optional[bool] = None
    urban_focus: Optional[bool] = None
    require_severely_distressed: Optional[bool] = None
    min_distress_percentile: float = 0.0
    small_deal_fund: Optional[bool] = None
    minority_focus: Optional[bool] = None
    uts_focus: Optional[bool] = None
    nonprofit_preferred: Optional[bool] = None
    forprofit_accepted: TriState = TriState.UNKNOWN
    owner_occupied_preferred: Optional[bool] = None
    native_american_focus: Optional[bool] = None
    allocation_type: Optional[str] = None
    amount_remaining: float = 0.0
    year: Optional[int] = None

    @field_validator(
        "cde_id", "name", "status", "service_area_type", "predominant_market",
        "predominant_financing", "allocation_type", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value):
        return to_text(value)

    @field_validator("min_deal_size", "min_distress_percentile", "amount_remaining", mode="before")
    @classmethod
    def _coerce_number(cls, value):
        return to_number(value)

    @field_validator("max_deal_size", mode="before")
    @classmethod
    def _coerce_max(cls, value):
        # 0 or missing means no upper bound
        number = to_number(value)
        return number if number > 0 else None

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value):
        return to_int(value)

    @field_validator(*_FLAG_FIELDS_CDE, mode="before")
    @classmethod
    def _coerce_flag(cls, value):
        return to_flag(value)

    @field_validator("forprofit_accepted", mode="before")
    @classmethod
    def _coerce_tristate(cls, value):
        return to_tristate(value)

    @field_validator("primary_states", "target_sectors", mode="before")
    @classmethod
    def _coerce_sequence(cls, value):
        # NaN, numbers, bools and mappings carry no list: treat as missing
        if value is None or isinstance(value, Mapping):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if not isinstance(value, Iterable):
            return ()
        return tuple(str(item).strip() for item in value if to_text(item) is not None)

    @property
    def is_active(self) -> bool:
        return (self.status or "active").strip().lower() == "active"


class MatchResult(BaseModel):
    """Outcome of scoring one deal against one CDE."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    breakdown: Dict[str, int] = Field(default_factory=dict)
    points: int = 0
    eliminated_by: Optional[str] = None
    cde_id: Optional[str] = None
    deal_id: Optional[str] = None

    @property
    def strength(self) -> str:
        return match_strength(self.score)

    @property
    def passed_gates(self) -> bool:
        return self.eliminated_by is None

    def top_reasons(self, limit: int = 4) -> List[str]:
        """First ``limit`` reasons, for badge-style display."""
        return self.reasons[:limit]

    def to_payload(self) -> Dict:
        """Scan-endpoint shape: camelCase keys."""
        return {
            "cdeId": self.cde_id,
            "dealId": self.deal_id,
            "score": self.score,
            "reasons": list(self.reasons),
            "breakdown": dict(self.breakdown),
        }
