"""Build engine profiles from raw deal and CDE records."""
import json
import logging
from typing import Any, Dict, Mapping, Optional

from automatch.entity.enrich import enrich_cde, is_missing
from automatch.score.models import CDEProfile, DealProfile
from automatch.score.normalize import (
    TriState,
    canonical_sector,
    classify_real_estate,
    is_program_name,
    normalize_text,
    to_flag,
    to_number,
    to_tristate,
)
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables

logger = logging.getLogger(__name__)

NONPROFIT_MARKERS = ("nonprofit", "non profit", "501")


def _first(*values: Any) -> Any:
    """Return the first non-missing value, or None."""
    for value in values:
        if not is_missing(value):
            return value
    return None


def _any_flag(*values: Any) -> Optional[bool]:
    """True if any value is truthy; False if at least one is an explicit no; else None."""
    flags = [to_flag(v) for v in values]
    if any(flag is True for flag in flags):
        return True
    if any(flag is False for flag in flags):
        return False
    return None


def parse_intake_data(raw: Any) -> Dict[str, Any]:
    """
    Decode a deal's ``intake_data`` column.

    Args:
        raw: Dict, JSON string or missing value

    Returns:
        Dict (empty when missing or undecodable)
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not decode intake_data: {e}")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _project_type(record: Mapping[str, Any], intake: Mapping[str, Any], tables: ReferenceTables) -> Optional[str]:
    for candidate in (record.get("project_type"), intake.get("projectType")):
        if is_missing(candidate):
            continue
        if is_program_name(candidate, tables):
            # "NMTC" and friends are programs, not project types
            logger.warning(f"Deal {record.get('id')}: ignoring program name {candidate!r} as project type")
            continue
        return str(candidate).strip()
    return None


def _is_non_profit(intake: Mapping[str, Any]) -> Optional[bool]:
    org_type = normalize_text(_first(intake.get("organizationType"), intake.get("entityType")))
    if org_type:
        return any(marker in org_type for marker in NONPROFIT_MARKERS)
    return to_flag(intake.get("isNonProfit"))


def _is_rural(record: Mapping[str, Any], intake: Mapping[str, Any]) -> Optional[bool]:
    flag = to_flag(intake.get("isRural"))
    classification = normalize_text(record.get("tract_classification"))
    if flag or "rural" in classification:
        return True
    if flag is False or classification:
        return False
    return None


def deal_profile_from_record(
    record: Mapping[str, Any],
    tables: ReferenceTables = DEFAULT_TABLES
) -> DealProfile:
    """
    Map a raw deal row onto a DealProfile.

    Columns read: ``id``, ``state``, ``project_type``,
    ``nmtc_financing_requested``, ``tract_severely_distressed``,
    ``tract_eligible``, ``tract_classification``, ``distress_score``,
    ``program_level``, ``aian`` and the ``intake_data`` JSON document
    (sectorCategory, ventureType, isRural, organizationType/entityType,
    isNonProfit, minorityOwned/isMinorityOwned, isOwnerOccupied, isRealEstate,
    distressPercentile, isUts, isTribal/isAian).

    Args:
        record: Raw deal row
        tables: Reference tables (program names, real-estate keywords)

    Returns:
        DealProfile
    """
    intake = parse_intake_data(record.get("intake_data"))

    project_type = _project_type(record, intake, tables)
    sector_category = canonical_sector(_first(intake.get("sectorCategory")), tables)
    if sector_category is not None and is_program_name(sector_category, tables):
        sector_category = None
    venture_type = _first(intake.get("ventureType"), record.get("venture_type"))

    is_real_estate = classify_real_estate(
        venture_type,
        to_tristate(_first(intake.get("isRealEstate"), record.get("is_real_estate"))),
        project_type or sector_category,
        tables,
    )

    distress = to_number(intake.get("distressPercentile")) or to_number(record.get("distress_score"))

    return DealProfile(
        deal_id=_first(record.get("id"), record.get("deal_id")),
        state=_first(record.get("state"), intake.get("state")),
        project_type=project_type,
        sector_category=sector_category,
        venture_type=venture_type,
        allocation_request=_first(
            record.get("nmtc_financing_requested"),
            record.get("allocation_request"),
            intake.get("nmtcFinancingRequested"),
        ),
        severely_distressed=_any_flag(record.get("tract_severely_distressed"), intake.get("severelyDistressed")),
        is_qct=_any_flag(record.get("tract_eligible"), intake.get("isQct")),
        distress_score=distress,
        is_rural=_is_rural(record, intake),
        is_non_profit=_is_non_profit(intake),
        is_minority_owned=_any_flag(intake.get("minorityOwned"), intake.get("isMinorityOwned")),
        is_owner_occupied=to_tristate(intake.get("isOwnerOccupied")),
        is_real_estate=is_real_estate,
        is_uts=to_flag(intake.get("isUts")),
        is_tribal=_any_flag(intake.get("isTribal"), intake.get("isAian"), record.get("aian")),
        allocation_type=_first(record.get("program_level"), record.get("allocation_type")),
    )


def cde_profile_from_record(
    record: Mapping[str, Any],
    tables: ReferenceTables = DEFAULT_TABLES,
    enrich: bool = True
) -> CDEProfile:
    """
    Map a raw CDE row onto a CDEProfile, enriching it first.

    Legacy columns are honoured when the current ones are empty:
    ``min_distress_score`` for ``min_distress_percentile`` and
    ``underserved_states_focus`` for ``uts_focus``.

    Args:
        record: Raw CDE row
        tables: Reference tables
        enrich: Run enrich_cde before mapping

    Returns:
        CDEProfile
    """
    row = enrich_cde(record, tables) if enrich else dict(record)

    forprofit = to_tristate(row.get("forprofit_accepted"))
    if forprofit is TriState.UNKNOWN:
        logger.debug(f"CDE {row.get('name')}: forprofit_accepted not stated, treating as accepted")

    return CDEProfile(
        cde_id=_first(row.get("id"), row.get("organization_id"), row.get("cde_id")),
        name=row.get("name"),
        status=row.get("status"),
        service_area_type=row.get("service_area_type"),
        primary_states=_first(row.get("primary_states")),
        predominant_market=row.get("predominant_market"),
        predominant_financing=row.get("predominant_financing"),
        target_sectors=_first(row.get("target_sectors")),
        min_deal_size=row.get("min_deal_size"),
        max_deal_size=row.get("max_deal_size"),
        rural_focus=row.get("rural_focus"),
        urban_focus=row.get("urban_focus"),
        require_severely_distressed=row.get("require_severely_distressed"),
        min_distress_percentile=(
            to_number(row.get("min_distress_percentile")) or to_number(row.get("min_distress_score"))
        ),
        small_deal_fund=row.get("small_deal_fund"),
        minority_focus=row.get("minority_focus"),
        uts_focus=_any_flag(row.get("uts_focus"), row.get("underserved_states_focus")),
        nonprofit_preferred=row.get("nonprofit_preferred"),
        forprofit_accepted=forprofit,
        owner_occupied_preferred=row.get("owner_occupied_preferred"),
        native_american_focus=row.get("native_american_focus"),
        allocation_type=row.get("allocation_type"),
        amount_remaining=row.get("amount_remaining"),
        year=row.get("year"),
    )
