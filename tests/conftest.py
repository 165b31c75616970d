from __future__ import annotations

import os
from pathlib import Path

import pytest

from tests.composer_fixture_harness import create_cards_fixture_db

_COMPOSER_ENV_PREFIX = "DECK_COMPOSER_"


@pytest.fixture(autouse=True)
def _hermetic_composer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Runtime overrides from the developer shell must not leak into tests.
    for key in list(os.environ):
        if key.startswith(_COMPOSER_ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def cards_db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = create_cards_fixture_db(tmp_path)
    monkeypatch.setenv("DECK_COMPOSER_DB_PATH", str(db_path))
    return db_path
