"""Hard eliminator gates, evaluated before any criterion."""
from typing import NamedTuple, Optional

from automatch.score.models import CDEProfile, DealProfile
from automatch.score.normalize import (
    TriState,
    classify_real_estate,
    market_state_tokens,
    mentions_state_name,
    normalize_text,
    resolve_state,
)
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables


class GateResult(NamedTuple):
    passed: bool
    via: str
    reason: str
    state_abbrev: Optional[str] = None


def cde_financing_focus(cde: CDEProfile) -> Optional[str]:
    """
    Classify a CDE's predominant financing.

    Returns:
        "real_estate", "business", "both", or None when the text is empty or
        names neither focus
    """
    financing = normalize_text(cde.predominant_financing)
    is_real_estate = "real estate" in financing
    is_business = "business" in financing or "operating" in financing

    if is_real_estate and is_business:
        return "both"
    if is_real_estate:
        return "real_estate"
    if is_business:
        return "business"
    return None


def geographic_gate(
    deal: DealProfile,
    cde: CDEProfile,
    tables: ReferenceTables = DEFAULT_TABLES
) -> GateResult:
    """
    Check that the CDE can serve the deal's state.

    First match wins: national service area, then unresolvable deal state
    (fail), then ``primary_states``, then state tokens or the full state name
    inside ``predominant_market``.

    Args:
        deal: Deal profile
        cde: CDE profile
        tables: Reference tables with the state names

    Returns:
        GateResult; ``state_abbrev`` is the resolved deal state when known
    """
    state = resolve_state(deal.state, tables)

    if normalize_text(cde.service_area_type) == "national":
        return GateResult(True, "national", "Service area is national",
                          state.abbrev if state else None)

    if state is None:
        return GateResult(False, "unknown_state", f"Deal state {deal.state!r} not recognized")

    for entry in cde.primary_states:
        cleaned = entry.strip()
        if cleaned.upper() == state.abbrev or cleaned.lower() == state.name:
            return GateResult(True, "primary_states",
                              f"Primary states include {state.abbrev}", state.abbrev)

    market = cde.predominant_market or ""
    if state.abbrev in market_state_tokens(market):
        return GateResult(True, "market_states",
                          f"Predominant market lists {state.abbrev}", state.abbrev)
    if mentions_state_name(market, state.name, tables):
        return GateResult(True, "market_name",
                          f"Predominant market mentions {state.name.title()}", state.abbrev)

    return GateResult(False, "out_of_area", f"Does not serve {state.abbrev}", state.abbrev)


def financing_gate(
    deal: DealProfile,
    cde: CDEProfile,
    tables: ReferenceTables = DEFAULT_TABLES
) -> GateResult:
    """
    Check that the CDE's real-estate/business financing focus fits the deal.

    Owner-occupied deals (the default when unstated) fit either focus. A CDE
    with no clear focus, or a deal whose type cannot be determined, gets the
    benefit of the doubt.
    """
    if deal.owner_occupied:
        return GateResult(True, "owner_occupied", "Owner-occupied project fits any financing focus")

    focus = cde_financing_focus(cde)
    if focus is None:
        return GateResult(True, "ambiguous_cde", "CDE financing focus not stated")
    if focus == "both":
        return GateResult(True, "both", "CDE finances real estate and businesses")

    deal_type = classify_real_estate(
        deal.venture_type, deal.is_real_estate, deal.project_type or deal.sector_category, tables
    )
    if deal_type is TriState.UNKNOWN:
        return GateResult(True, "indeterminate_deal", "Deal type unknown")

    if deal_type is TriState.YES and focus == "real_estate":
        return GateResult(True, "real_estate", "Real estate deal, real estate CDE")
    if deal_type is TriState.NO and focus == "business":
        return GateResult(True, "business", "Business deal, business CDE")

    deal_label = "real estate" if deal_type is TriState.YES else "business"
    cde_label = "real estate" if focus == "real_estate" else "business"
    return GateResult(False, "mismatch",
                      f"Financing type mismatch: {deal_label} deal vs {cde_label} CDE")
