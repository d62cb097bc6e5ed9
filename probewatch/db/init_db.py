from __future__ import annotations

import logging

from .models import Base, engine

logger = logging.getLogger(__name__)


def main() -> None:
    """Создать таблицы схемы, если их ещё нет (для SQLite и локального запуска без alembic)."""
    Base.metadata.create_all(engine)
    logger.info("database schema ensured: %s", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    main()
