"""AutoMatch REST API client with local-scoring fallback."""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from automatch.config import settings
from automatch.score.models import CDEProfile, DealProfile
from automatch.score.scorer import best_per_cde, mark_client_estimate, scan_cdes_for_deal
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables

logger = logging.getLogger(__name__)

# Auth failures that mean "score it ourselves" rather than "report an error"
FALLBACK_STATUSES = {401, 403}


class AutoMatchClient:
    """Client for the remote AutoMatch service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        """
        Initialize AutoMatch client.

        Args:
            base_url: API base URL (uses settings if not provided)
            token: Bearer token (uses settings if not provided)
            timeout: Request timeout in seconds (uses settings if not provided)
        """
        self.base_url = (base_url or settings.automatch_api_base).rstrip("/")
        self.token = token if token is not None else settings.automatch_api_token
        self.timeout = timeout or settings.request_timeout

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    # Connection refused is retried (100ms, 200ms, 400ms); other errors are not
    @retry(
        retry=retry_if_exception_type(requests.ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=0.4),
        reraise=True
    )
    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """
        Make API request with retry logic.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint (without base URL)
            data: Request body data

        Returns:
            Response JSON as dict, unwrapped from a ``{"data": ...}`` envelope
        """
        url = f"{self.base_url}/{endpoint}"

        try:
            if method == "GET":
                response = requests.get(url, headers=self.headers, timeout=self.timeout)
            elif method == "POST":
                response = requests.post(url, headers=self.headers, json=data, timeout=self.timeout)
            else:
                raise ValueError(f"Unsupported method: {method}")

            response.raise_for_status()
            payload = response.json()

        except requests.RequestException as e:
            logger.error(f"AutoMatch API request failed: {e}")
            raise

        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload

    def run_matches(self, deal_id: str, min_score: int = 0, max_results: int = 500) -> Dict:
        """Run AutoMatch for a deal on the server."""
        body = {"dealId": deal_id, "minScore": min_score, "maxResults": max_results}
        return self._request("POST", f"automatch/run/{deal_id}", body)

    def get_matches(self, deal_id: str) -> Dict:
        """Fetch stored matches for a deal."""
        return self._request("GET", f"automatch/matches/{deal_id}")


def run_with_fallback(
    deal: DealProfile,
    cde_loader: Callable[[], Iterable[CDEProfile]],
    client: Optional[AutoMatchClient] = None,
    min_score: int = 0,
    max_results: int = 500,
    tables: ReferenceTables = DEFAULT_TABLES
) -> Dict[str, Any]:
    """
    Run AutoMatch remotely, scoring locally when the service cannot be used.

    The local path runs when there is no client or token, when the service is
    unreachable after retries, or when it answers 401/403. Other HTTP errors
    propagate. Locally scored matches keep the best allocation year per CDE and
    carry the client-side estimate marker in their reasons.

    Args:
        deal: Deal profile (``deal_id`` is sent to the service)
        cde_loader: Called only on the local path to load CDE profiles
        client: AutoMatch client
        min_score: Drop matches below this score
        max_results: Keep at most this many matches
        tables: Reference tables for local scoring

    Returns:
        Dict with ``matches``, ``source`` ("remote" or "local") and, for local
        results, ``timestamp``
    """
    if client is not None and client.token and deal.deal_id:
        try:
            data = client.run_matches(deal.deal_id, min_score=min_score, max_results=max_results)
            return {"matches": data.get("matches", []), "source": "remote"}
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status not in FALLBACK_STATUSES:
                raise
            logger.warning(f"AutoMatch service rejected credentials ({status}), scoring locally")
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"AutoMatch service unavailable, scoring locally: {e}")
    else:
        logger.info("No AutoMatch credentials configured, scoring locally")

    results = scan_cdes_for_deal(deal, cde_loader(), tables)
    results = best_per_cde(results)
    results = [r for r in results if r.score >= min_score][:max(max_results, 0)]

    return {
        "matches": [mark_client_estimate(r).to_payload() for r in results],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "local",
    }
