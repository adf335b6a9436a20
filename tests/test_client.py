"""Unit tests for the AutoMatch API client and its local fallback."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from automatch.crm.automatch_api import AutoMatchClient, run_with_fallback
from automatch.score.rules import CLIENT_ESTIMATE_MARKER


def _response(payload=None, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload or {}
    if status >= 400:
        error_response = requests.Response()
        error_response.status_code = status
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error", response=error_response)
    return response


@pytest.fixture
def client():
    return AutoMatchClient(base_url="http://automatch.test/api/", token="secret", timeout=5)


@pytest.fixture
def cde_loader(make_cde):
    loader = MagicMock(return_value=[
        make_cde(cde_id="A", year=2023, amount_remaining=0),
        make_cde(cde_id="A", year=2024),
        make_cde(cde_id="B", service_area_type="local", primary_states=["CA"]),
    ])
    return loader


class TestAutoMatchClient:
    """Tests for AutoMatchClient requests."""

    def test_headers(self, client):
        assert client.base_url == "http://automatch.test/api"
        assert client.headers["Authorization"] == "Bearer secret"
        assert "Authorization" not in AutoMatchClient(token="").headers

    @patch("automatch.crm.automatch_api.requests.post")
    def test_run_matches_unwraps_envelope(self, mock_post, client):
        mock_post.return_value = _response({"data": {"matches": [{"cdeId": "X", "score": 90}]}})

        data = client.run_matches("DEAL-1", min_score=70, max_results=25)

        assert data == {"matches": [{"cdeId": "X", "score": 90}]}
        args, kwargs = mock_post.call_args
        assert args[0] == "http://automatch.test/api/automatch/run/DEAL-1"
        assert kwargs["json"] == {"dealId": "DEAL-1", "minScore": 70, "maxResults": 25}
        assert kwargs["timeout"] == 5

    @patch("automatch.crm.automatch_api.requests.get")
    def test_get_matches(self, mock_get, client):
        mock_get.return_value = _response({"matches": []})
        assert client.get_matches("DEAL-1") == {"matches": []}
        assert mock_get.call_args[0][0].endswith("/automatch/matches/DEAL-1")

    @patch("automatch.crm.automatch_api.requests.post")
    def test_connection_error_retried_three_times(self, mock_post, client):
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(requests.ConnectionError):
            client.run_matches("DEAL-1")
        assert mock_post.call_count == 3

    @patch("automatch.crm.automatch_api.requests.post")
    def test_http_error_not_retried(self, mock_post, client):
        mock_post.return_value = _response(status=500)
        with pytest.raises(requests.HTTPError):
            client.run_matches("DEAL-1")
        assert mock_post.call_count == 1


class TestRunWithFallback:
    """Tests for run_with_fallback."""

    @patch("automatch.crm.automatch_api.requests.post")
    def test_remote_success(self, mock_post, client, cde_loader, make_deal):
        mock_post.return_value = _response({"matches": [{"cdeId": "X", "score": 88}]})

        response = run_with_fallback(make_deal(), cde_loader, client=client)

        assert response == {"matches": [{"cdeId": "X", "score": 88}], "source": "remote"}
        cde_loader.assert_not_called()

    @patch("automatch.crm.automatch_api.requests.post")
    def test_connection_refused_falls_back(self, mock_post, client, cde_loader, make_deal):
        mock_post.side_effect = requests.ConnectionError("refused")

        response = run_with_fallback(make_deal(), cde_loader, client=client, min_score=50)

        assert mock_post.call_count == 3
        assert response["source"] == "local"
        assert "timestamp" in response
        assert [m["cdeId"] for m in response["matches"]] == ["A"]
        match = response["matches"][0]
        assert match["score"] == 100
        assert match["reasons"][-1] == CLIENT_ESTIMATE_MARKER

    @patch("automatch.crm.automatch_api.requests.post")
    def test_timeout_falls_back(self, mock_post, client, cde_loader, make_deal):
        mock_post.side_effect = requests.Timeout("slow")
        response = run_with_fallback(make_deal(), cde_loader, client=client)
        assert response["source"] == "local"
        assert mock_post.call_count == 1

    @pytest.mark.parametrize("status", [401, 403])
    @patch("automatch.crm.automatch_api.requests.post")
    def test_auth_failure_falls_back(self, mock_post, status, client, cde_loader, make_deal):
        mock_post.return_value = _response(status=status)
        response = run_with_fallback(make_deal(), cde_loader, client=client)
        assert response["source"] == "local"

    @patch("automatch.crm.automatch_api.requests.post")
    def test_server_error_propagates(self, mock_post, client, cde_loader, make_deal):
        mock_post.return_value = _response(status=500)
        with pytest.raises(requests.HTTPError):
            run_with_fallback(make_deal(), cde_loader, client=client)
        cde_loader.assert_not_called()

    @patch("automatch.crm.automatch_api.requests.post")
    def test_no_token_scores_locally(self, mock_post, cde_loader, make_deal):
        response = run_with_fallback(make_deal(), cde_loader, client=AutoMatchClient(token=""))

        mock_post.assert_not_called()
        assert response["source"] == "local"
        assert len(response["matches"]) == 2

    def test_max_results(self, cde_loader, make_deal):
        response = run_with_fallback(make_deal(), cde_loader, client=None, max_results=1)
        assert len(response["matches"]) == 1
