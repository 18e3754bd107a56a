from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from sqlalchemy.orm import Session, sessionmaker

from readlater.db.base import Base
from readlater.db.session import create_engine_from_url, create_session_factory, init_db
from readlater.telemetry import metrics


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture()
def session_factory() -> sessionmaker[Session]:
    engine = create_engine_from_url("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    Base.metadata.drop_all(engine)
    engine.dispose()
