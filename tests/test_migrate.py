from __future__ import annotations

from pathlib import Path

import pytest
from alembic.config import Config
from alembic.script import ScriptDirectory

from taskboard.infra import migrate

ROOT = Path(__file__).resolve().parents[1]


def test_run_upgrade_head_targets_head(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[Config, str]] = []
    monkeypatch.setattr(migrate.command, "upgrade", lambda config, revision: calls.append((config, revision)))

    migrate.run_upgrade_head(str(ROOT / "alembic.ini"))

    assert len(calls) == 1
    config, revision = calls[0]
    assert revision == "head"
    assert config.get_main_option("script_location") == "infra/migrations"


def test_migration_history_has_single_head() -> None:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "infra" / "migrations"))
    script = ScriptDirectory.from_config(config)
    assert script.get_heads() == ["202610190001"]
