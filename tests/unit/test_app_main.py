"""
Unit tests for the application module: health check and startup warnings.
"""

import logging
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from psycopg import OperationalError

from src.api.main import _warn_on_weak_production_config, app
from src.config.settings import Settings


@pytest.fixture
def pool(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    pool = MagicMock()
    monkeypatch.setattr(app.state, "pool", pool, raising=False)
    return pool


class TestHealthCheck:
    def test_healthy(self, pool: MagicMock) -> None:
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        pool.connection.return_value.__enter__.return_value.execute.assert_called_once_with(
            "SELECT 1"
        )

    def test_database_down_is_503(self, pool: MagicMock) -> None:
        pool.connection.side_effect = OperationalError("connection refused")

        response = TestClient(app).get("/health")

        assert response.status_code == 503
        assert response.json() == {"detail": "Database unavailable"}


class TestProductionWarnings:
    def test_production_defaults_warn(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = Settings(
            _env_file=None,
            environment="production",
            recaptcha_secret_key="",
            jwt_secret=Settings.model_fields["jwt_secret"].default,
            email_backend="console",
        )

        with caplog.at_level(logging.WARNING):
            _warn_on_weak_production_config(settings)

        assert "Bot-score checks are not enforced" in caplog.text
        assert "JWT_SECRET is the development default" in caplog.text
        assert "Email backend is 'console'" in caplog.text

    def test_hardened_production_is_quiet(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = Settings(
            _env_file=None,
            environment="production",
            recaptcha_secret_key="real-secret",
            jwt_secret="a-real-production-secret-of-enough-length",
            email_backend="smtp",
        )

        with caplog.at_level(logging.WARNING):
            _warn_on_weak_production_config(settings)

        assert caplog.text == ""

    def test_development_is_quiet(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            _warn_on_weak_production_config(Settings(_env_file=None, environment="development"))
        assert caplog.text == ""
