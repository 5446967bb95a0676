import os
from dataclasses import dataclass

#* ─── Analysis Constants ───────────────────────────────────────────────────────
WINDOW_SIZE  = 4096
STEP_SIZE    = 1024
SILENCE_RMS  = 0.01     # absolute amplitude, assumes input in [-1, 1]
LAG_FLOOR_HZ = 1000.0   # peak search starts at floor(sr / LAG_FLOOR_HZ)
MIN_FREQ     = 60.0     # exclusive
MAX_FREQ     = 1000.0   # exclusive
MIN_MIDI     = 48       # C3, inclusive
MAX_MIDI     = 84       # C6, inclusive
CORRELATION_METHODS = ('direct', 'fft')

#* ─── Server Settings ──────────────────────────────────────────────────────────
SAMPLE_RATE   = 44100
PORT          = int(os.environ.get("PORT", 8000))
MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", 100))
LOG_LEVEL     = os.environ.get("LOG_LEVEL", "info").lower()


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Constants for one melody analysis pass.

    window_size / step_size control the framing, silence_rms the gate,
    lag_floor_hz the smallest lag the peak search considers, and the
    min/max pairs what the quantizer accepts. correlation_method picks
    between the exact lag loop ('direct') and scipy's FFT correlation.
    """

    window_size: int = WINDOW_SIZE
    step_size: int = STEP_SIZE
    silence_rms: float = SILENCE_RMS
    lag_floor_hz: float = LAG_FLOOR_HZ
    min_freq: float = MIN_FREQ
    max_freq: float = MAX_FREQ
    min_midi: int = MIN_MIDI
    max_midi: int = MAX_MIDI
    correlation_method: str = 'direct'

    def __post_init__(self):
        if self.step_size <= 0:
            raise ValueError(f"step_size must be positive, got {self.step_size}")
        if self.window_size <= self.step_size:
            raise ValueError(
                f"window_size ({self.window_size}) must exceed step_size ({self.step_size})"
            )
        if self.silence_rms < 0:
            raise ValueError(f"silence_rms must be non-negative, got {self.silence_rms}")
        if self.lag_floor_hz <= 0:
            raise ValueError(f"lag_floor_hz must be positive, got {self.lag_floor_hz}")
        if not 0 <= self.min_freq < self.max_freq:
            raise ValueError(f"bad frequency bounds ({self.min_freq}, {self.max_freq})")
        if self.min_midi > self.max_midi:
            raise ValueError(f"bad MIDI bounds [{self.min_midi}, {self.max_midi}]")
        if self.correlation_method not in CORRELATION_METHODS:
            raise ValueError(
                f"Unknown correlation_method {self.correlation_method!r}, "
                f"valid options: {list(CORRELATION_METHODS)}"
            )


DEFAULT_CONFIG = AnalysisConfig()
