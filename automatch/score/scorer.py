"""Match scoring module."""
import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd
from tqdm import tqdm

from automatch.score.criteria import CRITERION_CHECKS, ScoringContext
from automatch.score.gates import financing_gate, geographic_gate
from automatch.score.models import CDEProfile, DealProfile, MatchResult
from automatch.score.reasons import cap_reasons, compose_reasons
from automatch.score.rules import CLIENT_ESTIMATE_MARKER, points_to_score
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables

logger = logging.getLogger(__name__)


def calculate_match(
    deal: DealProfile,
    cde: CDEProfile,
    tables: ReferenceTables = DEFAULT_TABLES
) -> MatchResult:
    """
    Score one deal against one CDE.

    The geographic gate runs first, then the financing gate; a failed gate
    returns score 0 with only the gates evaluated so far in the breakdown.
    Otherwise all fifteen criteria are scored in order.

    Args:
        deal: Deal profile
        cde: Enriched CDE profile
        tables: Reference tables

    Returns:
        MatchResult
    """
    geo = geographic_gate(deal, cde, tables)
    if not geo.passed:
        logger.debug(f"CDE {cde.cde_id} eliminated for deal {deal.deal_id}: {geo.reason}")
        return MatchResult(
            score=0,
            reasons=[geo.reason],
            breakdown={"geographic": 0},
            eliminated_by="geographic",
            cde_id=cde.cde_id,
            deal_id=deal.deal_id,
        )

    fin = financing_gate(deal, cde, tables)
    if not fin.passed:
        logger.debug(f"CDE {cde.cde_id} eliminated for deal {deal.deal_id}: {fin.reason}")
        return MatchResult(
            score=0,
            reasons=[fin.reason],
            breakdown={"geographic": 1, "financing": 0},
            eliminated_by="financing",
            cde_id=cde.cde_id,
            deal_id=deal.deal_id,
        )

    ctx = ScoringContext(geographic=geo, financing=fin, tables=tables)
    breakdown: Dict[str, int] = {}
    reason_codes = []

    for name, check in CRITERION_CHECKS.items():
        outcome = check(deal, cde, ctx)
        breakdown[name] = outcome.point
        if outcome.point and outcome.code:
            reason_codes.append((outcome.code, outcome.value))

    points = sum(breakdown.values())
    score = points_to_score(points)

    return MatchResult(
        score=score,
        reasons=compose_reasons(reason_codes),
        breakdown=breakdown,
        points=points,
        cde_id=cde.cde_id,
        deal_id=deal.deal_id,
    )


def _rank(results: List[MatchResult], min_score: int, max_results: Optional[int]) -> List[MatchResult]:
    kept = [r for r in results if r.score >= min_score]
    # sorted() is stable, so ties keep input order
    kept = sorted(kept, key=lambda r: r.score, reverse=True)
    if max_results is not None:
        kept = kept[:max(max_results, 0)]
    return kept


def scan_cdes_for_deal(
    deal: DealProfile,
    cdes: Iterable[CDEProfile],
    tables: ReferenceTables = DEFAULT_TABLES,
    min_score: int = 0,
    max_results: Optional[int] = None,
    progress: bool = False
) -> List[MatchResult]:
    """
    Score one deal against many CDEs.

    Args:
        deal: Deal profile
        cdes: CDE profiles
        tables: Reference tables
        min_score: Drop results below this score
        max_results: Keep at most this many results
        progress: Show a tqdm progress bar

    Returns:
        Results sorted by score descending
    """
    cdes = list(cdes)
    iterator = tqdm(cdes, desc="Scoring CDEs", disable=not progress)
    results = [calculate_match(deal, cde, tables) for cde in iterator]
    ranked = _rank(results, min_score, max_results)
    logger.info(f"Deal {deal.deal_id}: {len(ranked)} of {len(cdes)} CDEs at or above {min_score}")
    return ranked


def scan_deals_for_cde(
    cde: CDEProfile,
    deals: Iterable[DealProfile],
    tables: ReferenceTables = DEFAULT_TABLES,
    min_score: int = 0,
    max_results: Optional[int] = None,
    progress: bool = False
) -> List[MatchResult]:
    """Score many deals against one CDE; same contract as scan_cdes_for_deal."""
    deals = list(deals)
    iterator = tqdm(deals, desc="Scoring deals", disable=not progress)
    results = [calculate_match(deal, cde, tables) for deal in iterator]
    ranked = _rank(results, min_score, max_results)
    logger.info(f"CDE {cde.cde_id}: {len(ranked)} of {len(deals)} deals at or above {min_score}")
    return ranked


def best_per_cde(results: Iterable[MatchResult]) -> List[MatchResult]:
    """
    Collapse per-allocation-year results to the best score per CDE.

    CDE tables hold one row per CDE per allocation year under the same id.
    Results without a ``cde_id`` are kept as they are.

    Returns:
        Results sorted by score descending; ties keep first-seen order
    """
    best: Dict[object, MatchResult] = {}
    order: List[object] = []
    for result in results:
        key = result.cde_id if result.cde_id is not None else object()
        if key not in best:
            order.append(key)
            best[key] = result
        elif result.score > best[key].score:
            best[key] = result
    return sorted((best[key] for key in order), key=lambda r: r.score, reverse=True)


def mark_client_estimate(result: MatchResult) -> MatchResult:
    """Return a copy of the result whose reasons end with the client-side marker."""
    if CLIENT_ESTIMATE_MARKER in result.reasons:
        return result
    return result.model_copy(update={"reasons": [*result.reasons, CLIENT_ESTIMATE_MARKER]})


def results_to_payload(results: Iterable[MatchResult]) -> Dict:
    """Wrap results in the scan response shape ``{"matches": [...]}``."""
    return {"matches": [r.to_payload() for r in results]}


def results_to_frame(results: Iterable[MatchResult], reasons_limit: Optional[int] = None) -> pd.DataFrame:
    """
    Flatten results into a DataFrame, one row per pair and one column per criterion.

    Args:
        results: Match results
        reasons_limit: Keep only the first N reasons in ``reason_text``

    Returns:
        DataFrame with deal_id, cde_id, score, strength, points, eliminated_by,
        reason_text and the criterion columns
    """
    rows = []
    for result in results:
        reasons = cap_reasons(result.reasons, reasons_limit)
        row = {
            "deal_id": result.deal_id,
            "cde_id": result.cde_id,
            "score": result.score,
            "strength": result.strength,
            "points": result.points,
            "eliminated_by": result.eliminated_by,
            "reason_text": "; ".join(reasons),
        }
        row.update(result.breakdown)
        rows.append(row)
    return pd.DataFrame(rows)
