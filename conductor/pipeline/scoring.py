# conductor/pipeline/scoring.py
"""Post-assessment summary computed from the event log."""
from __future__ import annotations

import math
from typing import Iterable, List, Optional

import numpy as np

from .energy import level_bounds
from .models import (
    AnalysisMode,
    AssessmentSummary,
    BreatheCue,
    EnergyEvent,
    EnergyLevelChanged,
    TargetMatched,
)

DEFAULT_LEVEL = 5


def change_accuracy(level: int, frequency: float, mode: AnalysisMode = AnalysisMode.STANDARD) -> float:
    """100 inside the level's frequency range, else 100 minus 1 point per 10 Hz off-centre."""
    lo, hi = level_bounds(level, mode)
    if lo <= frequency <= hi:
        return 100.0
    centre = (lo + hi) / 2.0
    return max(0.0, 100.0 - abs(frequency - centre) / 10.0)


def summarize_assessment(
    events: Iterable[EnergyEvent],
    mode: AnalysisMode = AnalysisMode.STANDARD,
    default_level: int = DEFAULT_LEVEL,
) -> AssessmentSummary:
    events = list(events)
    changes: List[EnergyLevelChanged] = [e for e in events if isinstance(e, EnergyLevelChanged)]
    breathes = [e for e in events if isinstance(e, BreatheCue)]
    matches = [e for e in events if isinstance(e, TargetMatched)]

    per_change: List[Optional[float]] = []
    for change in changes:
        if change.frequency > 0.0:
            per_change.append(change_accuracy(change.new_level, change.frequency, mode))
        else:
            per_change.append(None)

    scored = [a for a in per_change if a is not None]
    accuracy = float(np.mean(scored)) if scored else 50.0

    levels = [c.new_level for c in changes] + [int(default_level)]
    energy_range = max(levels) - min(levels)

    n = len(changes)
    overall = round(
        accuracy * 0.4
        + min(energy_range / 8.0 * 100.0, 100.0) * 0.3
        + min(n / 4.0 * 100.0, 100.0) * 0.2
        + len(breathes) * 10
    )

    response = [m.response_time_ms / 1000.0 for m in matches]

    return AssessmentSummary(
        total_changes=n,
        successful_transitions=int(math.floor(n * (accuracy / 100.0))),
        average_response_time_s=float(np.mean(response)) if response else None,
        energy_range=int(energy_range),
        breathe_recoveries=len(breathes),
        energy_accuracy=int(round(accuracy)),
        overall_score=int(min(overall, 100)),
        per_change_accuracy=per_change,
    )
