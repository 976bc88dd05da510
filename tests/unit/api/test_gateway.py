"""Tests for the API Gateway.

These tests verify that:
1. Referral events are accepted without waiting for the fraud check
2. Fingerprint sightings are recorded through the registry
3. Engine errors map to sanitized HTTP responses
"""

import logging
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from referral_guard.api.gateway import ServiceManager, app, get_cors_origins, get_service
from referral_guard.api.schemas import ReferralEventResponse
from referral_guard.api.service import ReferralGuardService
from referral_guard.common.config.settings import Config, Environment, LogLevel
from referral_guard.common.exceptions import StorageError, ValidationError
from referral_guard.orchestration import FraudCheckOrchestrator


@pytest.fixture
def client():
    """Create a test client for the API."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_service():
    service = MagicMock()
    service.submit_referral_event.return_value = ReferralEventResponse(
        accepted=True, event_id="evt_test_001"
    )
    service.record_fingerprint = AsyncMock()
    app.dependency_overrides[get_service] = lambda: service
    return service


@pytest.fixture
def real_service(store):
    service = ReferralGuardService(store, FraudCheckOrchestrator(store), MagicMock())
    app.dependency_overrides[get_service] = lambda: service
    return service


@pytest.fixture
def referral_event() -> dict:
    return {
        "referral_id": "ref_001",
        "referrer_account_id": "acct_referrer",
        "referred_account_id": "acct_new",
        "fingerprint_hash": "fp_001",
        "ip_address": "203.0.113.7",
    }


class TestHealthEndpoints:

    def test_health_check_returns_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "referral-guard-gateway"}

    def test_ready_before_start(self, client):
        assert client.get("/ready").status_code == 503

    def test_ready_after_start(self, client, monkeypatch):
        monkeypatch.setattr(ServiceManager, "_instance", MagicMock())

        assert client.get("/ready").status_code == 200

    def test_request_id_header_is_present(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"].startswith("req_")


class TestReferralEvents:

    def test_accepted(self, client, mock_service, referral_event):
        response = client.post("/v1/referral-events", json=referral_event)

        assert response.status_code == 202
        assert response.json() == {"accepted": True, "event_id": "evt_test_001"}
        submitted = mock_service.submit_referral_event.call_args.args[0]
        assert submitted.referred_account_id == "acct_new"
        assert submitted.fingerprint_hash == "fp_001"

    def test_optional_fields_may_be_omitted(self, client, mock_service):
        response = client.post("/v1/referral-events", json={
            "referrer_account_id": "acct_referrer",
            "referred_account_id": "acct_new",
        })

        assert response.status_code == 202

    @pytest.mark.parametrize("missing", ["referrer_account_id", "referred_account_id"])
    def test_missing_account_returns_422(self, client, mock_service, referral_event, missing):
        del referral_event[missing]

        assert client.post("/v1/referral-events", json=referral_event).status_code == 422

    def test_not_ready_returns_503(self, client, referral_event):
        response = client.post("/v1/referral-events", json=referral_event)

        assert response.status_code == 503


class TestFingerprints:

    def test_sighting_recorded(self, client, real_service, store):
        response = client.post("/v1/fingerprints", json={
            "fingerprint_hash": "fp_001",
            "account_id": "acct_new",
            "fingerprint_components": {"platform": "iOS"},
        })

        assert response.status_code == 201
        fingerprint_id = response.json()["fingerprint_id"]
        assert store.fingerprints[fingerprint_id].fingerprint_hash == "fp_001"
        assert (fingerprint_id, "acct_new") in store.links

    def test_empty_hash_returns_422(self, client, real_service):
        response = client.post("/v1/fingerprints", json={"fingerprint_hash": "", "account_id": "a"})

        assert response.status_code == 422


class TestErrorHandling:

    def test_storage_error_is_sanitized_503(self, client, mock_service):
        mock_service.record_fingerprint.side_effect = StorageError(
            "create_fingerprint failed: OSError: host db-1 unreachable"
        )

        response = client.post("/v1/fingerprints", json={"fingerprint_hash": "fp", "account_id": "a"})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "storage_error"
        assert body["message"] == "Storage is temporarily unavailable"
        assert "db-1" not in response.text

    def test_validation_error_is_400(self, client, mock_service):
        mock_service.record_fingerprint.side_effect = ValidationError("account_id is required")

        response = client.post("/v1/fingerprints", json={"fingerprint_hash": "fp", "account_id": "a"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unexpected_error_is_500(self, mock_service):
        mock_service.record_fingerprint.side_effect = RuntimeError("secret internals")
        client = TestClient(app, raise_server_exceptions=False)

        try:
            response = client.post("/v1/fingerprints", json={"fingerprint_hash": "fp", "account_id": "a"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["error"] == "internal_error"
        assert "secret internals" not in response.text


class TestCorsOrigins:

    def test_explicit_origins(self):
        with patch.dict(os.environ, {"REFGUARD_CORS_ORIGINS": "https://a.example, https://b.example"}):
            assert get_cors_origins() == ["https://a.example", "https://b.example"]

    def test_unset_in_production_disables_cors(self):
        with patch.dict(os.environ, {"REFGUARD_ENVIRONMENT": "production"}, clear=True):
            assert get_cors_origins() == []

    def test_unset_in_development_allows_all(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_cors_origins() == ["*"]


class TestLifespan:
    """Startup applies the configured log level."""

    @pytest.fixture
    def root_logger(self, monkeypatch):
        monkeypatch.setattr(ServiceManager, "start", AsyncMock())
        monkeypatch.setattr(ServiceManager, "shutdown", AsyncMock())
        root = logging.getLogger()
        previous = root.level
        yield root
        root.setLevel(previous)

    @pytest.mark.parametrize("debug,log_level,expected", [
        (False, LogLevel.WARNING, logging.WARNING),
        (False, LogLevel.ERROR, logging.ERROR),
        (True, LogLevel.ERROR, logging.DEBUG),
    ])
    def test_configured_level_applied(self, root_logger, monkeypatch, debug, log_level, expected):
        config = Config(environment=Environment.DEVELOPMENT, debug=debug, log_level=log_level)
        monkeypatch.setattr("referral_guard.api.gateway.get_config", lambda: config)

        with TestClient(app):
            assert root_logger.level == expected

        ServiceManager.start.assert_awaited_once_with(config)
