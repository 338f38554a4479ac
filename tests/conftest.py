"""Shared fixtures for the llrt-check test suite."""

import json
import sys
from pathlib import Path

import pytest

from llrt_check.compat.matrix import CompatibilityMatrix
from llrt_check.config.settings import DEFAULT_MATRIX_PATH, Settings

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
HANDLERS_DIR = FIXTURES_DIR / "handlers"
FAKE_WRAPPER = FIXTURES_DIR / "fake_wrapper.py"


@pytest.fixture(autouse=True)
def clean_lambda_env(monkeypatch):
    """Keep a stray AWS_LAMBDA_RUNTIME_API from leaking into spawned runtimes."""
    monkeypatch.delenv("AWS_LAMBDA_RUNTIME_API", raising=False)


@pytest.fixture
def handler_path():
    """Return the absolute path of a fixture handler by file name."""

    def _path(name: str) -> str:
        return str(HANDLERS_DIR / name)

    return _path


@pytest.fixture
def fake_settings():
    """
    Settings that run the Python fake wrapper as both Node.js and LLRT.

    Port 0 lets the emulator pick a free port.
    """
    return Settings(
        node_binary=sys.executable,
        llrt_binary=sys.executable,
        wrapper_path=str(FAKE_WRAPPER),
        runtime_api_port=0,
        execution_timeout_seconds=15,
    )


@pytest.fixture
def default_matrix():
    """The compatibility matrix shipped with the package."""
    return CompatibilityMatrix.load(str(DEFAULT_MATRIX_PATH))


@pytest.fixture
def small_matrix():
    """A hand-written matrix covering each status combination."""
    return CompatibilityMatrix.from_dict(
        {
            "features": {
                "fs": {
                    "supported": True,
                    "partiallySupported": True,
                    "plannedSupport": False,
                    "notNative": False,
                    "useFetchInstead": False,
                },
                "net": {
                    "supported": False,
                    "partiallySupported": False,
                    "plannedSupport": False,
                    "notNative": False,
                    "useFetchInstead": False,
                },
                "http": {
                    "supported": False,
                    "partiallySupported": False,
                    "plannedSupport": True,
                    "notNative": True,
                    "useFetchInstead": True,
                },
                "worker_threads": {
                    "supported": False,
                    "partiallySupported": False,
                    "plannedSupport": False,
                    "notNative": False,
                    "useFetchInstead": False,
                },
            },
            "legend": {"⚠️": "partially supported in LLRT"},
        }
    )


@pytest.fixture
def write_json(tmp_path):
    """Write an object to a JSON file under tmp_path and return its path."""

    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    return _write

