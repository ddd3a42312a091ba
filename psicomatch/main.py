from __future__ import annotations

import logging
from pathlib import Path

from flask import Flask

from .api import create_app
from .config import Settings, get_settings
from .db import Database
from .resources import load_questionnaires


logger = logging.getLogger(__name__)


def setup_logging(path: Path, level: int = logging.INFO) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(path, encoding="utf-8"),
        ],
    )


def init_database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    for definition in load_questionnaires(settings.questionnaires_path):
        db.ensure_test(definition)
    return db


def build_app(settings: Settings) -> Flask:
    return create_app(init_database(settings))


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_file, settings.log_level)
    app = build_app(settings)
    logger.info("Serving matching API on %s:%s", settings.api_host, settings.api_port)
    app.run(host=settings.api_host, port=settings.api_port, debug=False)


if __name__ == "__main__":
    main()
