from __future__ import annotations

import random
from typing import Optional


def make_rng(seed: Optional[int] = None) -> random.Random:
    """
    Build the random source used for scheduler jitter and level selection.

    A private ``random.Random`` keeps the engine independent from the global
    RNG, so a fixed seed reproduces the same event sequence.
    """
    return random.Random(seed)
