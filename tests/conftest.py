"""
Shared fixtures for the test suite.

Synthetic signals only: every test builds its audio from numpy so nothing
depends on files on disk.
"""

import numpy as np
import pytest

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SR: int = 44100
"""Sample rate used by all synthetic signals."""


def make_tone(freq: float, seconds: float, sr: int = SR, amp: float = 0.5) -> np.ndarray:
    """Sine wave of `freq` Hz lasting `seconds`."""
    t = np.arange(int(round(seconds * sr))) / sr
    return amp * np.sin(2 * np.pi * freq * t)


def make_silence(seconds: float, sr: int = SR) -> np.ndarray:
    return np.zeros(int(round(seconds * sr)))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tone():
    return make_tone


@pytest.fixture
def silence():
    return make_silence


@pytest.fixture
def progress_log():
    """Callable that records every progress value it receives."""

    class _Log(list):
        def __call__(self, fraction: float) -> None:
            self.append(fraction)

    return _Log()
