SR = 44100

import io
from typing import List, Tuple, cast
import numpy as np
import numpy.typing as npt
import soundfile as sf

# Relative amplitudes of the fundamental and its first five harmonics
HARMONIC_WEIGHTS = (1.0, 1.0 / 2, 1.0 / 3, 1.0 / 4, 1.0 / 5, 1.0 / 6)
DETUNE_RATIO = 1.002
DETUNE_GAIN = 0.3

ATTACK = 0.02
DECAY = 0.10
SUSTAIN = 0.6
RELEASE = 0.30

# Gains never reach exactly zero so exponential ramps stay defined
SILENT = 0.0001


def adsr(n: int, attack: float = ATTACK, decay: float = DECAY, sustain: float = SUSTAIN, release: float = RELEASE) -> npt.NDArray[np.float32]:
	"""Attack-decay-sustain-release envelope spanning n samples.

	Stages are shortened proportionally when the tone is too short to hold them.
	"""
	env = np.full(n, sustain, dtype=np.float32)
	if n == 0:
		return env
	a, d, r = int(attack * SR), int(decay * SR), int(release * SR)
	total = a + d + r
	if total > n:
		scale = n / float(total)
		a, d, r = int(a * scale), int(d * scale), int(r * scale)
	if a > 0:
		env[:a] = np.linspace(0.0, 1.0, a, endpoint=False, dtype=np.float32)
	if d > 0:
		env[a:a + d] = np.linspace(1.0, sustain, d, endpoint=False, dtype=np.float32)
	if r > 0:
		env[n - r:] = np.linspace(sustain, 0.0, r, endpoint=True, dtype=np.float32)
	return env


def _oscillator(freq: float, t: npt.NDArray[np.float32], waveform: str) -> npt.NDArray[np.float32]:
	omega = 2.0 * np.pi * freq
	if waveform == "sine":
		return np.sin(omega * t).astype(np.float32)
	if waveform == "triangle":
		# 2/pi * arcsin(sin)
		return ((2.0 / np.pi) * np.arcsin(np.sin(omega * t))).astype(np.float32)
	if waveform == "saw":
		phase = (freq * t).astype(np.float32)
		return (2.0 * (phase - np.floor(phase + 0.5))).astype(np.float32)
	x = np.zeros_like(t, dtype=np.float32)
	nyquist = SR / 2.0
	for n, w in enumerate(HARMONIC_WEIGHTS, start=1):
		if freq * n >= nyquist:
			break
		x += (w * np.sin(omega * n * t)).astype(np.float32)
	return x


def tone(freq: float, dur: float, waveform: str = "harmonics") -> npt.NDArray[np.float32]:
	"""Generate a single tone shaped by an ADSR envelope, peak-normalised to 1.

	Args:
		freq: Frequency in Hz
		dur: Duration in seconds
		waveform: One of {"harmonics","sine","triangle","saw"}
	"""
	t = np.linspace(0.0, dur, int(SR * dur), endpoint=False, dtype=np.float32)
	x = _oscillator(freq, t, waveform)
	if waveform == "harmonics":
		# slightly detuned copy for a chorused, less sterile sound
		x = x + DETUNE_GAIN * np.sin(2.0 * np.pi * freq * DETUNE_RATIO * t).astype(np.float32)
	y = (x * adsr(len(x))).astype(np.float32)
	return normalize(y)


def normalize(x: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
	max_abs = float(np.max(np.abs(x))) if x.size else 1.0
	if max_abs > 0.0:
		x = (x / max_abs).astype(np.float32)
	return cast(npt.NDArray[np.float32], x)


def resample(x: npt.NDArray[np.float32], src_rate: int, dst_rate: int) -> npt.NDArray[np.float32]:
	"""Linear-interpolation resampling; good enough for one-shot note samples."""
	if src_rate == dst_rate or x.size == 0:
		return x
	n_out = int(round(len(x) * dst_rate / float(src_rate)))
	src_t = np.arange(len(x), dtype=np.float64) / src_rate
	dst_t = np.arange(n_out, dtype=np.float64) / dst_rate
	return np.interp(dst_t, src_t, x).astype(np.float32)


def to_mono(data: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
	if data.ndim == 2:
		data = data.mean(axis=1)
	return data.astype(np.float32)


def wav_bytes(x: npt.NDArray[np.float32], sr: int = SR) -> bytes:
	buf = io.BytesIO()
	sf.write(buf, x, sr, format="WAV")
	return buf.getvalue()


class GainSchedule:
	"""Time-indexed gain automation for one voice.

	Events are kept sorted by time. A "set" event jumps to its value, a ramp
	event moves from the previous event's value to its own, arriving exactly
	at its time.
	"""

	def __init__(self, value: float = 1.0, origin: float = 0.0) -> None:
		self._initial = float(value)
		self._origin = float(origin)
		self._events: List[Tuple[float, str, float]] = []

	@property
	def events(self) -> List[Tuple[float, str, float]]:
		return list(self._events)

	def _insert(self, time: float, kind: str, value: float) -> None:
		self._events.append((float(time), kind, float(value)))
		self._events.sort(key=lambda e: e[0])

	def set_value_at(self, value: float, time: float) -> None:
		self._insert(time, "set", value)

	def linear_ramp_to(self, value: float, time: float) -> None:
		self._insert(time, "linear", value)

	def exponential_ramp_to(self, value: float, time: float) -> None:
		if value <= 0.0:
			raise ValueError("exponential ramp target must be positive")
		self._insert(time, "exp", value)

	def cancel_and_hold(self, time: float) -> None:
		"""Drop every event at or after `time`, freezing the gain it had reached."""
		held = self.value_at(time)
		self._events = [e for e in self._events if e[0] < time]
		self.set_value_at(held, time)

	def value_at(self, time: float) -> float:
		return float(self.values(np.array([time], dtype=np.float64))[0])

	def values(self, times: npt.NDArray[np.float64]) -> npt.NDArray[np.float32]:
		out = np.full(times.shape, self._initial, dtype=np.float64)
		prev_t, prev_v = self._origin, self._initial
		for t, kind, v in self._events:
			if kind != "set" and t > prev_t:
				mask = (times >= prev_t) & (times < t)
				frac = (times[mask] - prev_t) / (t - prev_t)
				if kind == "exp" and prev_v > 0.0:
					out[mask] = prev_v * (v / prev_v) ** frac
				else:
					out[mask] = prev_v + (v - prev_v) * frac
			out[times >= t] = v
			prev_t, prev_v = t, v
		return out.astype(np.float32)
