import logging
import os
from pathlib import Path
from typing import Generator
import pytest


@pytest.fixture(autouse=True)
def reset_logger_state() -> Generator:
    """Automatically reset logger state after each test.

    cli.main() can disable logging globally when --quiet or log level NONE
    is used, which would affect subsequent tests.
    """
    import con_telemetry.telemetry_main as main_module

    yield

    logging.disable(logging.NOTSET)
    main_module.lgr.disabled = False
    main_module.lgr.setLevel(logging.NOTSET)


@pytest.fixture
def telemetry_log(tmp_path: Path) -> str:
    return str(tmp_path / "telemetry.jsonl")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator:
    """Provide a clean environment for testing configuration.

    Clears all TELEMETRY_* and TEST_* environment variables to avoid test
    pollution. Yields the monkeypatch instance for setting new env vars.
    Variables loaded from .env files behind monkeypatch's back are removed
    afterwards.
    """
    for key in list(os.environ.keys()):
        if key.startswith("TELEMETRY_") or key.startswith("TEST_"):
            monkeypatch.delenv(key, raising=False)
    yield monkeypatch
    for key in list(os.environ.keys()):
        if key.startswith("TELEMETRY_") or key.startswith("TEST_"):
            del os.environ[key]
