"""
Note naming helpers used by the melody quantizer and the API.

Every function returns a NamingResult instead of raising, so callers can
decide locally whether to skip a value or use it.
"""
import math
import numbers
from dataclasses import dataclass
from typing import Any, Optional

import librosa


@dataclass(frozen=True)
class NamingResult:
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


def _fail(msg):
    return NamingResult(error=msg)


def frequency_to_semitone(freq):
    """Nearest equal-tempered MIDI number for `freq` Hz (A4 = 440 Hz = 69)."""
    try:
        freq = float(freq)
    except (TypeError, ValueError):
        return _fail(f"frequency is not a number: {freq!r}")
    if not math.isfinite(freq) or freq <= 0:
        return _fail(f"frequency must be finite and > 0, got {freq}")
    # half-up, not banker's rounding
    return NamingResult(value=int(math.floor(float(librosa.hz_to_midi(freq)) + 0.5)))


def semitone_to_note_name(semitone):
    """MIDI number -> ASCII label with sharps, e.g. 61 -> 'C#4'."""
    if isinstance(semitone, bool) or not isinstance(semitone, numbers.Real):
        return _fail(f"semitone is not a number: {semitone!r}")
    if not math.isfinite(semitone) or semitone != int(semitone):
        return _fail(f"semitone must be a whole number, got {semitone}")
    if not 0 <= semitone <= 127:
        return _fail(f"semitone out of MIDI range: {semitone}")
    try:
        name = librosa.midi_to_note(int(semitone), unicode=False)
    except librosa.ParameterError as e:
        return _fail(str(e))
    return NamingResult(value=str(name))


def note_name_to_semitone(name):
    """Label -> MIDI number, e.g. 'A4' -> 69. Accepts sharps and flats."""
    if not isinstance(name, str) or not name.strip():
        return _fail(f"note name must be a non-empty string, got {name!r}")
    try:
        midi = librosa.note_to_midi(name.strip())
    except librosa.ParameterError as e:
        return _fail(str(e))
    return NamingResult(value=int(midi))
