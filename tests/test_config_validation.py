"""Tests for configuration loading and startup validation.

conftest.py replaces ``app.config`` in ``sys.modules``, so the real module
is loaded from its file under a private name.
"""

from __future__ import annotations

import importlib.util
import os
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

CONFIG_PATH = Path(__file__).resolve().parent.parent / "app" / "config.py"


@pytest.fixture()
def real_config():
    spec = importlib.util.spec_from_file_location("_real_app_config", CONFIG_PATH)
    assert spec is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


def _complete(real_config):
    return real_config.Settings(
        database_url="postgresql+psycopg://db.internal/polar_admin",
        polar_access_token="tok",
        polar_organization_id="org",
        polar_webhook_secret="secret",
        polar_page_size=50,
        frontend_url="https://app.example.com",
    )


class TestValidateSettings:
    def test_complete_settings_have_no_warnings(self, real_config) -> None:
        assert real_config.validate_settings(_complete(real_config)) == []

    def test_missing_api_credentials(self, real_config) -> None:
        s = replace(_complete(real_config), polar_access_token="")
        warnings = real_config.validate_settings(s)
        assert any("POLAR_ACCESS_TOKEN" in w for w in warnings)

    def test_missing_webhook_secret(self, real_config) -> None:
        s = replace(_complete(real_config), polar_webhook_secret="")
        warnings = real_config.validate_settings(s)
        assert any("POLAR_WEBHOOK_SECRET" in w for w in warnings)

    def test_page_size_out_of_range(self, real_config) -> None:
        s = replace(_complete(real_config), polar_page_size=500)
        warnings = real_config.validate_settings(s)
        assert any("POLAR_PAGE_SIZE" in w for w in warnings)

    def test_missing_frontend_url_names_localhost_fallback(self, real_config) -> None:
        s = replace(_complete(real_config), frontend_url="")
        warnings = real_config.validate_settings(s)
        assert any(
            "FRONTEND_URL" in w and "http://localhost:5173" in w for w in warnings
        )

    def test_localhost_database_in_production(self, real_config) -> None:
        s = replace(
            _complete(real_config),
            database_url="postgresql+psycopg://postgres@localhost/polar_admin",
        )
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            warnings = real_config.validate_settings(s)
        assert any("localhost" in w for w in warnings)


def test_env_bool_parsing(real_config) -> None:
    with patch.dict(os.environ, {"POLAR_REJECT_STALE_EVENTS": "Yes"}):
        assert real_config._env_bool("POLAR_REJECT_STALE_EVENTS") is True
    with patch.dict(os.environ, {"POLAR_REJECT_STALE_EVENTS": "0"}):
        assert real_config._env_bool("POLAR_REJECT_STALE_EVENTS") is False
