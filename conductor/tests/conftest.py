import sys
import warnings
from pathlib import Path

import pytest

# Ensure repository root is importable for `conductor` package resolution.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from conductor.pipeline.config import build_config  # noqa: E402
from conductor.pipeline.timers import SimulatedTimerService  # noqa: E402


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)
    warnings.filterwarnings("ignore", category=FutureWarning)
    warnings.filterwarnings("ignore", message=".*PySoundFile failed.*")
    warnings.filterwarnings("ignore", message=".*audioread.*")


@pytest.fixture
def sr():
    return 44100


@pytest.fixture
def timers():
    return SimulatedTimerService()


@pytest.fixture
def quiet_config():
    """Standard config without breathe cues or an auto-stop, seeded."""
    return build_config(
        "standard",
        {"scheduler.breathe_probability": 0.0, "duration_s": None, "seed": 1},
    )
