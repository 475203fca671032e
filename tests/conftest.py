import logging
import shutil
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from arbor.storage.db_manager import DBManager
from arbor.storage.node.store import NodeStore

ARBOR_ENV_VARS = ("ARBOR_CONFIG", "ARBOR_DB_PATH", "ARBOR_CONNECTION_STRING")


class TickingClock:
    """Deterministic clock: every ``now()`` call advances by ``step``."""

    def __init__(self, start: datetime = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current = value + self.step
        return value


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def temp_dir():
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def node_store(temp_dir):
    return NodeStore(temp_dir)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    for name in ARBOR_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_db_instances():
    yield
    DBManager.clear_instances()


@pytest.fixture(autouse=True)
def _reset_arbor_logging():
    yield
    root = logging.getLogger("arbor")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True
