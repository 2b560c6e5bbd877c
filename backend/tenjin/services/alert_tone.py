"""
Short synthesized alert chime: a sine sweep from D5 to D6 with an
exponential gain decay, rendered to 16-bit mono PCM for the host UI.
"""

import numpy as np

START_HZ = 587.33      # D5
END_HZ = 1174.66       # D6
SWEEP_SECONDS = 0.1
DURATION_SECONDS = 0.4
START_GAIN = 0.12
END_GAIN = 0.001


def _exp_ramp(start: float, end: float, t: np.ndarray, ramp_seconds: float) -> np.ndarray:
    progress = np.clip(t / ramp_seconds, 0.0, 1.0)
    return start * (end / start) ** progress


def synthesize_alert_tone(sample_rate: int = 24000) -> bytes:
    n = int(round(sample_rate * DURATION_SECONDS))
    t = np.arange(n, dtype=np.float64) / sample_rate

    freq = _exp_ramp(START_HZ, END_HZ, t, SWEEP_SECONDS)
    gain = _exp_ramp(START_GAIN, END_GAIN, t, DURATION_SECONDS)

    # integrate frequency for a continuous phase
    phase = 2.0 * np.pi * np.cumsum(freq) / sample_rate
    wave = np.sin(phase) * gain
    return (wave * 32767.0).astype("<i2").tobytes()
