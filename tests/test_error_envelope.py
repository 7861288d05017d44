"""Tests for the error body format and exception handling.

Every error response has the shape:
{
    "error": "<stable_code>",
    "message": "<human_readable>",
    "details": [{"field": ..., "message": ...}]   # validation errors only
}
"""

import json

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from muzee import app as app_module
from muzee.api.error_handling import (
    _STATUS_TO_CODE,
    _error_code_for_status,
    _error_response,
)
from muzee.api.schemas import ErrorBody, FieldError
from muzee.service.runtime import get_runtime
from muzee.storage.errors import CacheUnavailable


@pytest.fixture
def client(outbox):
    return TestClient(app_module.app)


class TestErrorBody:
    """Tests for the ErrorBody model."""

    def test_required_fields(self):
        error = ErrorBody(error="unauthorized", message="Authentication required")
        assert error.error == "unauthorized"
        assert error.details is None

    def test_details_list(self):
        error = ErrorBody(
            error="validation_error",
            message="Request validation failed",
            details=[FieldError(field="email", message="invalid email address")],
        )
        assert error.details[0].field == "email"

    def test_unknown_code_rejected(self):
        """Only stable error codes can be serialized."""
        with pytest.raises(ValidationError):
            ErrorBody(error="something_else", message="nope")


class TestStatusMapping:
    def test_known_statuses(self):
        assert _STATUS_TO_CODE[401] == "unauthorized"
        assert _error_code_for_status(429) == "rate_limit_exceeded"

    def test_unknown_statuses_fall_back(self):
        assert _error_code_for_status(418) == "invalid_request"
        assert _error_code_for_status(503) == "internal_server_error"

    def test_error_response_omits_empty_details(self):
        resp = _error_response(400, "bad", code="invalid_code")

        assert resp.status_code == 400
        assert json.loads(resp.body) == {"error": "invalid_code", "message": "bad"}


class TestRequestErrors:
    """Tests for malformed and invalid request bodies."""

    def test_invalid_json(self, client):
        resp = client.post(
            "/v1/auth/signup/send-code",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_field_errors_are_listed(self, client):
        resp = client.post(
            "/v1/auth/signup/send-code",
            json={"email": "not-an-email", "password": "short"},
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "validation_error"
        fields = {d["field"] for d in body["details"]}
        assert fields == {"email", "password"}
        messages = {d["message"] for d in body["details"]}
        assert "invalid email address" in messages

    def test_password_too_long(self, client):
        resp = client.post(
            "/v1/auth/signup/send-code",
            json={"email": "a@x.com", "password": "p" * 73},
        )

        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "password"

    def test_missing_field(self, client):
        resp = client.post(
            "/v1/auth/signup/verify-code", json={"email": "a@x.com", "code": "123456"}
        )

        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "client_id"

    @pytest.mark.parametrize("code", ["12345", "1234567", "abcdef", ""])
    def test_code_must_be_six_digits(self, client, code):
        resp = client.post(
            "/v1/auth/signup/verify-code",
            json={"email": "a@x.com", "code": code, "client_id": "c1"},
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_blank_client_id(self, client):
        resp = client.post(
            "/v1/auth/refresh", json={"refresh_token": "abc", "client_id": "   "}
        )

        assert resp.status_code == 400
        assert resp.json()["details"][0]["message"] == "client_id is required"

    def test_unknown_route(self, client):
        resp = client.get("/v1/nope")

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"


class TestInfrastructureErrors:
    """Store outages surface as opaque 500s."""

    def test_cache_unavailable(self, client, monkeypatch):
        cache = get_runtime().cache

        async def _down(key, ttl_seconds):
            raise CacheUnavailable("incr_and_expire", ConnectionError("refused"))

        monkeypatch.setattr(cache, "incr_and_expire", _down)
        resp = client.post(
            "/v1/auth/signup/send-code", json={"email": "a@x.com", "password": "pw123456"}
        )

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "internal_server_error",
            "message": "An internal server error occurred",
        }

    def test_unexpected_exception(self, monkeypatch):
        client = TestClient(app_module.app, raise_server_exceptions=False)
        auth = get_runtime().auth

        async def _boom(*args, **kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(auth, "logout", _boom)
        resp = client.post("/v1/auth/logout", json={"refresh_token": "abc"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "internal_server_error"
        assert "kaboom" not in resp.text
