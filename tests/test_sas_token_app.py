"""
Tests for the HTTP entry point
"""
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import HttpResponseError

from sas_token_app import app
from services.errors import AuthorizationError, ConfigurationError, ValidationError
from services.models import AccessToken, IssuanceResult

from conftest import START


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


def _mock_issuer(result=None, error=None):
    issuer = MagicMock()
    if error is not None:
        issuer.issue.side_effect = error
    else:
        issuer.issue.return_value = result
    return issuer


def test_returns_token_and_policy_timestamp(client):
    token = AccessToken(
        query="sv=2021-08-06&spr=https&si=mlsaspolicy2137&sr=c&sig=abc",
        container_url="https://devaccount.blob.core.windows.net/mlblobcontainer2137",
        mode="stored-policy",
        policy_id="mlsaspolicy2137",
    )
    result = IssuanceResult(token=token, policy_last_modified=START, policy_id="mlsaspolicy2137",
                            container_name="mlblobcontainer2137")

    with patch("sas_token_app.SasTokenIssuer.from_environment", return_value=_mock_issuer(result)):
        response = client.get("/api/SasTokenFunction")

    assert response.status_code == 200
    assert response.get_json() == {
        "ResponseMessage": "policy last modified: 2026-10-19 12:00:00 UTC",
        "SasToken": "?sv=2021-08-06&spr=https&si=mlsaspolicy2137&sr=c&sig=abc",
    }


@pytest.mark.parametrize("error,status", [
    (ValidationError("bad window"), 400),
    (ConfigurationError("Missing storage connection string"), 500),
    (AuthorizationError("cannot sign"), 500),
    (HttpResponseError("ServerBusy"), 502),
])
def test_errors_map_to_status_codes(client, error, status):
    with patch("sas_token_app.SasTokenIssuer.from_environment", return_value=_mock_issuer(error=error)):
        response = client.get("/api/SasTokenFunction")

    assert response.status_code == status
    body = response.get_json()
    assert body["error"] == type(error).__name__
    assert "SasToken" not in body


def test_configuration_error_while_loading(client):
    with patch("sas_token_app.SasTokenIssuer.from_environment", side_effect=ConfigurationError("no connection string")):
        response = client.get("/api/SasTokenFunction")
    assert response.status_code == 500


def test_only_get_is_allowed(client):
    assert client.post("/api/SasTokenFunction").status_code == 405


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}
