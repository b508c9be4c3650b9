"""
Tests for conductor.main: SecurityHeadersMiddleware, lifespan, error handler.
"""
from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient


@patch("conductor.main.init_db", new_callable=AsyncMock)
@patch("conductor.main.close_db", new_callable=AsyncMock)
def test_security_headers_middleware_adds_headers(mock_close: Any, mock_init: Any) -> None:
    """SecurityHeadersMiddleware adds X-Frame-Options, X-Content-Type-Options, etc."""
    from conductor.main import app
    client = TestClient(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.headers.get("X-Frame-Options") == "DENY"
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"


@patch("conductor.main.close_runtime", new_callable=AsyncMock)
@patch("conductor.main.init_db", new_callable=AsyncMock)
@patch("conductor.main.close_db", new_callable=AsyncMock)
def test_lifespan_opens_and_closes(mock_close: Any, mock_init: Any, mock_runtime: Any) -> None:
    """Lifespan initialises the DB on startup and releases everything on shutdown."""
    from conductor.main import app
    with TestClient(app) as client:
        assert client.get("/api/v1/health").status_code == 200
        mock_init.assert_awaited_once()
    mock_runtime.assert_awaited_once()
    mock_close.assert_awaited_once()


def test_unhandled_exception_is_generic() -> None:
    """Unexpected errors return a generic body with no internals."""
    from conductor.main import app
    client = TestClient(app, raise_server_exceptions=False)
    with patch("conductor.api.routes.health._llm_configured", side_effect=RuntimeError("db password=hunter2")):
        response = client.get("/api/v1/health/full")
    assert response.status_code == 500
    body = response.json()
    assert body["detail"]["code"] == "INTERNAL_ERROR"
    assert "hunter2" not in response.text


def test_openapi_hidden_outside_debug() -> None:
    from conductor.main import app
    client = TestClient(app)
    assert client.get("/docs").status_code == 404


def test_unhandled_exception_logs_request_trace_id(caplog: Any) -> None:
    """The last-resort handler tags its log line with the request's trace id."""
    from conductor.main import app
    client = TestClient(app, raise_server_exceptions=False)
    with patch("conductor.api.routes.health._llm_configured", side_effect=RuntimeError("boom")), \
            caplog.at_level(logging.ERROR, logger="conductor.main"):
        response = client.get("/api/v1/health/full", headers={"X-Request-ID": "req-12345678"})
    assert response.status_code == 500
    assert "[req-1234] Unhandled error" in caplog.text
