"""Tests for gunicorn configuration."""
from __future__ import annotations

import importlib.util
import os
from pathlib import Path
from unittest.mock import patch

CONFIG_PATH = Path(__file__).resolve().parent.parent / "gunicorn.conf.py"


def _load(name: str = "gunicorn_conf"):
    spec = importlib.util.spec_from_file_location(name, CONFIG_PATH)
    assert spec is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


class TestGunicornConfig:
    def test_config_loads(self) -> None:
        mod = _load()
        for attr in ("bind", "workers", "worker_class", "timeout", "max_requests"):
            assert hasattr(mod, attr)

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("GUNICORN_TIMEOUT", None)
            os.environ.pop("GUNICORN_BIND", None)
            mod = _load("gunicorn_conf_defaults")
        assert "8001" in mod.bind
        assert mod.timeout == 300
        assert "uvicorn" in mod.worker_class
        assert mod.proc_name == "polar_admin"

    def test_env_override_workers(self) -> None:
        with patch.dict(os.environ, {"GUNICORN_WORKERS": "4"}):
            mod = _load("gunicorn_conf_custom")
        assert mod.workers == 4

    def test_preload_defaults_false(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("GUNICORN_PRELOAD", None)
            mod = _load("gunicorn_conf_preload")
        assert mod.preload_app is False
