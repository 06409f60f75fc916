# conductor/pipeline/energy.py
"""Frequency to energy-level quantization.

Each mode has one ordered table of upper bin edges; a frequency maps to the
first edge it does not exceed, or to level 9 above the last edge. The outdoor
table uses wider bins to reduce level churn from noisy estimates.
"""
from __future__ import annotations

import bisect
from typing import Dict, Tuple

from .models import AnalysisMode, EnergyLevelInfo

MIN_LEVEL = 1
MAX_LEVEL = 9

LEVEL_EDGES: Dict[AnalysisMode, Tuple[float, ...]] = {
    AnalysisMode.STANDARD: (55.0, 85.0, 115.0, 145.0, 175.0, 205.0, 235.0, 265.0),
    AnalysisMode.OUTDOOR: (45.0, 80.0, 120.0, 155.0, 185.0, 215.0, 245.0, 275.0),
}

ENERGY_LEVELS: Tuple[EnergyLevelInfo, ...] = (
    EnergyLevelInfo(1, "Whisper", "Very quiet, intimate", 40.0),
    EnergyLevelInfo(2, "Calm", "Soft, reflective", 70.0),
    EnergyLevelInfo(3, "Relaxed", "Gentle, conversational", 100.0),
    EnergyLevelInfo(4, "Normal", "Standard conversation", 130.0),
    EnergyLevelInfo(5, "Engaged", "Active, interested", 160.0),
    EnergyLevelInfo(6, "Animated", "Enthusiastic, lively", 190.0),
    EnergyLevelInfo(7, "Energetic", "High energy, passionate", 220.0),
    EnergyLevelInfo(8, "Dynamic", "Very energetic, commanding", 250.0),
    EnergyLevelInfo(9, "Explosive", "Maximum energy, powerful", 280.0),
)

# Nominal outer limits of levels 1 and 9 (the Conductor pitch band)
_BAND_FLOOR_HZ = 30.0
_BAND_CEIL_HZ = 300.0


def level_for_frequency(frequency: float, mode: AnalysisMode = AnalysisMode.STANDARD) -> int:
    """Map a pitch in Hz to an energy level in [1, 9]. ``frequency`` must be > 0."""
    if not frequency > 0.0:
        raise ValueError(f"no pitch ({frequency!r}) cannot be mapped to an energy level")
    edges = LEVEL_EDGES[AnalysisMode(mode)]
    return bisect.bisect_left(edges, float(frequency)) + 1


def level_info(level: int) -> EnergyLevelInfo:
    if not MIN_LEVEL <= int(level) <= MAX_LEVEL:
        raise ValueError(f"energy level must be within [{MIN_LEVEL}, {MAX_LEVEL}], got {level}")
    return ENERGY_LEVELS[int(level) - 1]


def level_bounds(level: int, mode: AnalysisMode = AnalysisMode.STANDARD) -> Tuple[float, float]:
    """(low, high] frequency range covered by ``level`` in ``mode``."""
    level_info(level)
    edges = LEVEL_EDGES[AnalysisMode(mode)]
    lo = edges[level - 2] if level > MIN_LEVEL else _BAND_FLOOR_HZ
    hi = edges[level - 1] if level < MAX_LEVEL else _BAND_CEIL_HZ
    return lo, hi
