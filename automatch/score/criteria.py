"""The fifteen binary match criteria.

Every check returns exactly one point or zero. An unexpressed CDE preference
never costs a point; only an explicit, unmet requirement does. A reason code is
attached only when the point was earned against a preference the CDE actually
stated.
"""
import math
from typing import Any, Callable, Dict, NamedTuple, Optional

from automatch.score.gates import GateResult, cde_financing_focus
from automatch.score.models import CDEProfile, DealProfile
from automatch.score.normalize import is_underserved_state, normalize_text, underserved_states_for
from automatch.score.reasons import format_amount
from automatch.score.rules import SMALL_DEAL_MAX
from automatch.score.tables import ReferenceTables


class CriterionOutcome(NamedTuple):
    point: int
    code: Optional[str] = None
    value: Any = None


class ScoringContext(NamedTuple):
    geographic: GateResult
    financing: GateResult
    tables: ReferenceTables


PASS = CriterionOutcome(1)
FAIL = CriterionOutcome(0)


def geographic(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    # Enforced by the gate
    if ctx.geographic.via == "national":
        return CriterionOutcome(1, "GEO_NATIONAL")
    return CriterionOutcome(1, "GEO_STATE", ctx.geographic.state_abbrev)


def financing(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    # Enforced by the gate
    focus = cde_financing_focus(cde)
    if focus is None:
        return PASS
    if ctx.financing.via == "owner_occupied":
        return CriterionOutcome(1, "FIN_OWNER_OCCUPIED")
    if ctx.financing.via == "real_estate":
        return CriterionOutcome(1, "FIN_REAL_ESTATE")
    if ctx.financing.via == "business":
        return CriterionOutcome(1, "FIN_BUSINESS")
    return PASS


def urban_rural(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    is_rural = bool(deal.is_rural)
    if is_rural and cde.rural_focus:
        return CriterionOutcome(1, "RURAL")
    if not is_rural and cde.urban_focus:
        return CriterionOutcome(1, "URBAN")
    if not cde.rural_focus and not cde.urban_focus:
        return PASS
    return FAIL


def sector(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    deal_sector = normalize_text(deal.sector)
    cde_sectors = [normalize_text(s) for s in cde.target_sectors]
    cde_sectors = [s for s in cde_sectors if s]
    market = normalize_text(cde.predominant_market)

    # Generalist CDE
    if not cde_sectors and not market:
        return PASS
    if not deal_sector:
        return FAIL

    for cde_sector in cde_sectors:
        if cde_sector in deal_sector or deal_sector in cde_sector:
            return CriterionOutcome(1, "SECTOR", deal.sector)

    if market and deal_sector in market:
        return CriterionOutcome(1, "SECTOR_MARKET", deal.sector)
    return FAIL


def deal_size(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    amount = deal.allocation_request
    minimum = cde.min_deal_size
    maximum = cde.max_deal_size if cde.max_deal_size is not None else math.inf

    if not minimum <= amount <= maximum:
        return FAIL
    if minimum > 0 or cde.max_deal_size is not None:
        return CriterionOutcome(1, "DEAL_SIZE", format_amount(amount))
    return PASS


def small_deal_fund(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    amount = deal.allocation_request
    is_small_deal = 0 < amount <= SMALL_DEAL_MAX
    if not is_small_deal:
        return PASS
    if cde.small_deal_fund:
        return CriterionOutcome(1, "SMALL_DEAL")
    return FAIL


def severely_distressed(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if not cde.require_severely_distressed:
        return PASS
    if deal.severely_distressed:
        return CriterionOutcome(1, "SEVERELY_DISTRESSED")
    return FAIL


def distress_percentile(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    minimum = cde.min_distress_percentile
    if minimum == 0:
        return PASS
    if deal.distress_score >= minimum:
        return CriterionOutcome(1, "DISTRESS", f"{deal.distress_score:g} >= {minimum:g}")
    return FAIL


def minority_focus(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if not cde.minority_focus:
        return PASS
    if deal.is_minority_owned:
        return CriterionOutcome(1, "MINORITY")
    return FAIL


def uts_focus(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if not cde.uts_focus:
        return PASS
    state = ctx.geographic.state_abbrev
    if deal.is_uts:
        return CriterionOutcome(1, "UTS", state)

    # Allocation year not tabled: no list to miss
    if underserved_states_for(cde.year, ctx.tables) is None:
        return PASS
    if is_underserved_state(state, cde.year, ctx.tables):
        return CriterionOutcome(1, "UTS", state)
    return FAIL


def entity_type(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    forprofit_accepted = cde.forprofit_accepted.resolve(default=True)
    if not forprofit_accepted and not deal.is_non_profit:
        return FAIL
    if cde.nonprofit_preferred and deal.is_non_profit:
        return CriterionOutcome(1, "NONPROFIT_PREFERRED")
    if not forprofit_accepted:
        return CriterionOutcome(1, "NONPROFIT_REQUIRED")
    return PASS


def owner_occupied(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if not cde.owner_occupied_preferred:
        return PASS
    if deal.owner_occupied:
        return CriterionOutcome(1, "OWNER_OCCUPIED")
    return FAIL


def tribal(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if not cde.native_american_focus:
        return PASS
    if deal.is_tribal:
        return CriterionOutcome(1, "TRIBAL")
    return FAIL


def allocation_type(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    deal_type = normalize_text(deal.allocation_type)
    cde_type = normalize_text(cde.allocation_type)
    if not deal_type or not cde_type:
        return PASS
    if deal_type == cde_type:
        return CriterionOutcome(1, "ALLOCATION_TYPE", cde.allocation_type)
    return FAIL


def has_allocation(deal: DealProfile, cde: CDEProfile, ctx: ScoringContext) -> CriterionOutcome:
    if cde.amount_remaining > 0:
        return CriterionOutcome(1, "HAS_ALLOCATION", format_amount(cde.amount_remaining))
    return FAIL


Check = Callable[[DealProfile, CDEProfile, ScoringContext], CriterionOutcome]

CRITERION_CHECKS: Dict[str, Check] = {
    "geographic": geographic,
    "financing": financing,
    "urban_rural": urban_rural,
    "sector": sector,
    "deal_size": deal_size,
    "small_deal_fund": small_deal_fund,
    "severely_distressed": severely_distressed,
    "distress_percentile": distress_percentile,
    "minority_focus": minority_focus,
    "uts_focus": uts_focus,
    "entity_type": entity_type,
    "owner_occupied": owner_occupied,
    "tribal": tribal,
    "allocation_type": allocation_type,
    "has_allocation": has_allocation,
}
