"""
Shared fixtures for the test suite.

Centralizes the effect doubles every mixer and mastering test needs, so
individual test files only build their synthetic signals.
"""

from __future__ import annotations

import numpy as np
import pytest

from core.analyzer.types import AudioBuffer
from core.effects import InMemoryEffectsFactory, InMemoryGain

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SR = 44100
"""Standard sample rate for tests."""


# ---------------------------------------------------------------------------
# Effect doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def factory() -> InMemoryEffectsFactory:
    """Fresh in-memory effects factory; inspect ``factory.created`` after a pass."""
    return InMemoryEffectsFactory()


@pytest.fixture
def master_bus() -> InMemoryGain:
    """Gain sink standing in for the master bus or makeup gain."""
    return InMemoryGain()


# ---------------------------------------------------------------------------
# Buffers
# ---------------------------------------------------------------------------


@pytest.fixture
def silent_stereo() -> AudioBuffer:
    """One second of stereo digital silence."""
    return AudioBuffer(channels=np.zeros((2, SR)), sample_rate=SR)
