import logging
import math
import sys
from functools import lru_cache

import numpy as np
import soundfile as sf
from numba import njit
from scipy.signal import correlate, get_window

import note_names
from melody_config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

WINDOW_TYPE = 'hann'
INTERP_EPS  = 1e-12


class InvalidAudioError(ValueError):
    """Raised for a missing/empty buffer or a non-positive sample rate."""


def _no_progress(_fraction):
    pass

#* ─── Framing ──────────────────────────────────────────────────────────────────
def count_windows(n_samples, window_size, step_size):
    """Number of analysis windows; zero or negative when the buffer is too short."""
    return (n_samples - window_size) // step_size

def frame_windows(samples, window_size, step_size):
    # copies, so callers may scribble on a window without touching the buffer
    total = count_windows(len(samples), window_size, step_size)
    for i in range(max(0, total)):
        start = i * step_size
        yield np.array(samples[start:start + window_size], dtype=np.float64)

@lru_cache(maxsize=8)
def _taper(n):
    # symmetric Hann: 0.5 * (1 - cos(2*pi*i / (n - 1)))
    win = get_window(WINDOW_TYPE, n, fftbins=False)
    win.setflags(write=False)
    return win

def apply_taper(window):
    return window * _taper(len(window))

#* ─── Silence Gate ─────────────────────────────────────────────────────────────
def window_rms(window):
    return float(np.sqrt(np.mean(np.square(window))))

def is_silent(window, threshold=DEFAULT_CONFIG.silence_rms):
    return window_rms(window) < threshold

#* ─── Autocorrelation Pitch Estimate ───────────────────────────────────────────
# JIT-compiled lag products: profile[lag] = sum_i x[i] * x[i + lag]
@njit
def _lag_products(x, n_lags):
    N = x.shape[0]
    profile = np.zeros(n_lags)
    for lag in range(n_lags):
        s = 0.0
        for i in range(N - lag):
            s += x[i] * x[i + lag]
        profile[lag] = s
    return profile

def autocorrelate(normalized, method='direct'):
    """
    Unnormalized autocorrelation of `normalized` for lags 0 .. N//2 - 1.

    'direct' runs the exact O(N^2) lag loop, 'fft' goes through
    scipy.signal.correlate; both give the same profile up to rounding.
    """
    x = np.ascontiguousarray(normalized, dtype=np.float64)
    n_lags = len(x) // 2
    if method == 'fft':
        full = correlate(x, x, mode='full', method='fft')
        return full[len(x) - 1:len(x) - 1 + n_lags]
    return _lag_products(x, n_lags)

def find_fundamental_lag(profile, sample_rate, lag_floor_hz=DEFAULT_CONFIG.lag_floor_hz):
    """
    Lag of the strongest correlation at or above floor(sr / lag_floor_hz).
    Ties keep the lowest lag. None when the search range is empty.
    """
    min_lag = math.floor(sample_rate / lag_floor_hz)
    if min_lag >= len(profile):
        return None
    return min_lag + int(np.argmax(profile[min_lag:]))

def parabolic_refine(profile, peak):
    """Sub-sample peak position from the parabola through peak-1, peak, peak+1."""
    if 0 < peak < len(profile) - 1:
        alpha = profile[peak - 1]
        beta  = profile[peak]
        gamma = profile[peak + 1]
        denom = alpha - 2 * beta + gamma
        if abs(denom) >= INTERP_EPS:
            return peak + (alpha - gamma) / (2 * denom)
    return float(peak)

def detect_pitch_autocorrelation(tapered, sample_rate,
                                 lag_floor_hz=DEFAULT_CONFIG.lag_floor_hz, method='direct'):
    """
    Fundamental frequency (Hz) of a tapered window, or None when no
    usable periodicity is found.
    """
    max_amp = float(np.max(np.abs(tapered))) if len(tapered) else 0.0
    if max_amp == 0:
        return None
    profile = autocorrelate(tapered / max_amp, method)

    lag = find_fundamental_lag(profile, sample_rate, lag_floor_hz)
    if lag is None:
        return None
    lag = parabolic_refine(profile, lag)

    return sample_rate / lag if lag > 0 else None

#* ─── Quantization ─────────────────────────────────────────────────────────────
def quantize_pitch(freq, config=DEFAULT_CONFIG, naming=note_names):
    """
    Note label for a frequency estimate, or None if it falls outside the
    accepted frequency / MIDI range or cannot be named.
    """
    if freq is None or not (config.min_freq < freq < config.max_freq):
        return None

    semitone = naming.frequency_to_semitone(freq)
    if not semitone.ok:
        logger.warning("Failed to convert %.2f Hz to a semitone: %s", freq, semitone.error)
        return None
    if not config.min_midi <= semitone.value <= config.max_midi:
        return None

    name = naming.semitone_to_note_name(semitone.value)
    if not name.ok:
        logger.warning("Failed to name semitone %d: %s", semitone.value, name.error)
        return None
    return name.value

#* ─── Main Analysis Function ───────────────────────────────────────────────────
def _as_mono(samples):
    if samples is None:
        raise InvalidAudioError("No audio buffer supplied")
    audio = np.asarray(samples, dtype=np.float64)
    if audio.ndim == 2:
        audio = np.mean(audio, axis=1)
    elif audio.ndim != 1:
        raise InvalidAudioError(f"Expected a 1-D or 2-D sample buffer, got {audio.ndim}-D")
    if audio.size == 0:
        raise InvalidAudioError("Audio buffer is empty")
    return audio

def analyze_melody(samples, sample_rate, progress_callback=_no_progress,
                   config=DEFAULT_CONFIG, naming=note_names, cancel_event=None):
    """
    Extract the melody of a monophonic recording as a list of note labels.

    Args:
        samples: float samples in roughly [-1, 1]; 2-D (n, channels) input is
            averaged down to mono
        sample_rate: samples per second, > 0
        progress_callback: called once per window with processed / total
        config: AnalysisConfig with the framing, gate and range constants
        naming: object providing frequency_to_semitone / semitone_to_note_name
        cancel_event: threading.Event; checked before each window, when set
            the notes found so far are returned

    Returns:
        Note labels in temporal order. Empty when the buffer is shorter than
        one window or nothing pitched was found.
    """
    audio = _as_mono(samples)
    if not sample_rate or sample_rate <= 0:
        raise InvalidAudioError(f"Sample rate must be positive, got {sample_rate}")
    if progress_callback is None:
        progress_callback = _no_progress

    total = count_windows(len(audio), config.window_size, config.step_size)
    notes = []
    if total <= 0:
        logger.info("Buffer of %d samples is too short to analyse", len(audio))
        return notes

    silent = 0
    for processed, window in enumerate(frame_windows(audio, config.window_size, config.step_size), 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Melody analysis cancelled after %d/%d windows", processed - 1, total)
            break

        if is_silent(window, config.silence_rms):
            silent += 1
        else:
            pitch = detect_pitch_autocorrelation(apply_taper(window), sample_rate,
                                                 config.lag_floor_hz, config.correlation_method)
            note = quantize_pitch(pitch, config, naming)
            if note is not None:
                notes.append(note)
            logger.debug("window %d: pitch=%s note=%s", processed, pitch, note)

        progress_callback(processed / total)

    logger.debug("%d windows, %d silent, %d notes", total, silent, len(notes))
    return notes

#* ─── Command-line Analysis Function ───────────────────────────────────────────
def read_audio(path):
    audio, sr = sf.read(path)
    if audio.ndim > 1:
        audio = np.mean(audio, axis=1)
    return audio, sr

def analyze_file_cmdline(path):
    try:
        audio, sr = read_audio(path)
        print(f"✓ Loaded audio file: {path}")
    except (RuntimeError, OSError) as e:
        print(f"✗ Failed to read audio: {str(e)}")
        return None

    print(f"Audio duration: {len(audio) / sr:.2f}s @ {sr} Hz")
    print("🔍 Detecting pitch...")

    def show(fraction):
        print(f"\r  {fraction * 100:5.1f}%", end="", flush=True)

    try:
        notes = analyze_melody(audio, sr, show)
    except InvalidAudioError as e:
        print(f"✗ {e}")
        return None
    print()
    print(f"🎵 {len(notes)} notes: {' '.join(notes)}")
    return notes


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python detect_melody.py input.wav")
        sys.exit(1)
    logging.basicConfig(level=logging.WARNING)
    if analyze_file_cmdline(sys.argv[1]) is None:
        sys.exit(1)
