import numpy as np
import pytest

from conductor.pipeline.energy import (
    ENERGY_LEVELS,
    LEVEL_EDGES,
    level_bounds,
    level_for_frequency,
    level_info,
)
from conductor.pipeline.models import AnalysisMode

MODES = [AnalysisMode.STANDARD, AnalysisMode.OUTDOOR]


def test_standard_220_is_energetic():
    assert level_for_frequency(220.0, AnalysisMode.STANDARD) == 7
    assert level_info(7).name == "Energetic"


def test_outdoor_bins_are_shifted():
    assert level_for_frequency(210.0, AnalysisMode.STANDARD) == 7
    assert level_for_frequency(210.0, AnalysisMode.OUTDOOR) == 6


@pytest.mark.parametrize("freq, level", [
    (30.0, 1), (55.0, 1), (55.01, 2), (205.0, 6), (265.0, 8), (265.1, 9), (300.0, 9), (1000.0, 9),
])
def test_edges_are_inclusive_upper_bounds(freq, level):
    assert level_for_frequency(freq, AnalysisMode.STANDARD) == level


@pytest.mark.parametrize("bad", [0.0, -10.0])
def test_no_pitch_cannot_be_mapped(bad):
    with pytest.raises(ValueError):
        level_for_frequency(bad)


@pytest.mark.parametrize("mode", MODES)
def test_mapping_is_monotonic(mode):
    levels = [level_for_frequency(f, mode) for f in np.linspace(1.0, 400.0, 800)]
    assert levels == sorted(levels)
    assert levels[0] == 1 and levels[-1] == 9


@pytest.mark.parametrize("mode", MODES)
def test_bounds_round_trip(mode):
    for info in ENERGY_LEVELS:
        lo, hi = level_bounds(info.level, mode)
        assert lo < hi
        assert level_for_frequency((lo + hi) / 2.0, mode) == info.level


def test_tables():
    assert len(ENERGY_LEVELS) == 9
    for edges in LEVEL_EDGES.values():
        assert len(edges) == 8
        assert list(edges) == sorted(edges)
    with pytest.raises(ValueError):
        level_info(10)
