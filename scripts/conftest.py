import os
import tempfile
from pathlib import Path

import pytest

# БД тестов: временный файл SQLite, задаётся до первого импорта probewatch.db.models
_DB_DIR = Path(tempfile.mkdtemp(prefix="probewatch-tests-"))
os.environ["DB_URL"] = f"sqlite+pysqlite:///{(_DB_DIR / 'test.sqlite').as_posix()}"
os.environ.pop("API_KEY", None)


@pytest.fixture()
def db():
    """Чистая схема на каждый тест."""
    from probewatch.db.models import Base, engine

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


class FakeClock:
    """Детерминированные часы для проберов: отдаёт значения по очереди, затем повторяет последнее."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)
        self._last = self._values[0] if self._values else 0.0

    def __call__(self) -> float:
        if self._values:
            self._last = self._values.pop(0)
        return self._last


@pytest.fixture()
def fake_clock():
    return FakeClock
