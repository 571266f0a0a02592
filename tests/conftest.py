"""Pytest configuration and fixtures."""

from pathlib import Path
import sys

import pytest
import structlog

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from vital_store.clock import FixedClock  # noqa: E402
from vital_store.config import LatestPointerPolicy  # noqa: E402
from vital_store.store import VitalStore  # noqa: E402

NOW = 1_700_000_000


@pytest.fixture(autouse=True, scope="session")
def structlog_to_stdlib():
    """Route structlog through stdlib logging so stdout stays clean."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock():
    """Host clock frozen at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def store(clock):
    """Store with the default latest pointer policy."""
    return VitalStore(clock=clock)


@pytest.fixture
def legacy_store(clock):
    """Store reproducing the overwrite-and-clear latest pointer behaviour."""
    return VitalStore(clock=clock, latest_policy=LatestPointerPolicy.LEGACY)


@pytest.fixture
def alice(store):
    """Session for owner alice."""
    return store.session("alice")


@pytest.fixture
def sample_week():
    """A week of morning weigh-ins in grams, one per day."""
    return [(NOW - day * 86_400, 72_500 + day * 100) for day in range(7)]
