from __future__ import annotations

from alembic import command
from alembic.config import Config
from loguru import logger

from taskboard.infra.logging import configure_logging


def run_upgrade_head(config_path: str = "alembic.ini", revision: str = "head") -> None:
    config = Config(config_path)
    logger.info("upgrading taskboard schema to {} ({})", revision, config_path)
    command.upgrade(config, revision)


def main() -> None:
    configure_logging()
    run_upgrade_head()


if __name__ == "__main__":
    main()
