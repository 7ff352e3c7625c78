from __future__ import annotations

from pathlib import Path

import pytest
import structlog

from tests.helpers.database import make_database
from tests.helpers.transactions import FakeStore, RecordingLogger


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sleeps() -> list[float]:
    """Collects requested backoff delays instead of sleeping."""

    return []


@pytest.fixture
def database(tmp_path: Path):
    fixture = make_database(tmp_path)
    yield fixture
    fixture.engine.dispose()


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
