from __future__ import annotations

import logging
from pathlib import Path

import pytest

from launchmem.config import CONFIG_ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _isolate_launchmem_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("LAUNCHMEM_CONFIG", str(tmp_path / "config.json"))


@pytest.fixture(autouse=True)
def _reset_launchmem_logger():
    yield
    logger = logging.getLogger("launchmem")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
