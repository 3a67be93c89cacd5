"""Tone rendering: one-shot note playback with click-free envelopes.

A `ToneRenderer` schedules voices on a `Mixer` and keeps a time-based
playback telemetry that the UI polls for its cooldown indicators. Telemetry
runs off its own clock, so it completes even when nothing is audible.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Protocol

import numpy as np
import numpy.typing as npt

from .audio import SILENT, SR, resample, tone
from .models import Pitch, Settings
from .output import Mixer, Voice, open_default_output
from .samples import SampleCache, default_cache

logger = logging.getLogger(__name__)

# Final stretch of a note over which the gain falls to silence
END_RAMP = 0.02
# Fade applied by stop() and by retriggers
STOP_FADE = 0.015
STOP_DELAY = 0.03


class ToneSource(Protocol):
	def render(self, pitch: Pitch, duration: float, sample_rate: int) -> Optional[npt.NDArray[np.float32]]: ...


class SampleSource:
	"""Recorded samples from the shared cache."""

	def __init__(self, cache: SampleCache) -> None:
		self.cache = cache

	def render(self, pitch: Pitch, duration: float, sample_rate: int) -> Optional[npt.NDArray[np.float32]]:
		sample = self.cache.lookup(pitch)
		if sample is None:
			return None
		return resample(sample.data, sample.sample_rate, sample_rate)


class SynthSource:
	"""Additive synthesis, used when no sample archive is wanted."""

	def __init__(self, waveform: str = "harmonics") -> None:
		self.waveform = waveform

	def render(self, pitch: Pitch, duration: float, sample_rate: int) -> Optional[npt.NDArray[np.float32]]:
		return resample(tone(pitch.frequency, duration, self.waveform), SR, sample_rate)


class ToneRenderer:
	def __init__(
		self,
		output: Optional[Mixer],
		source: Optional[ToneSource],
		cache: Optional[SampleCache] = None,
		volume: float = 0.9,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._output = output
		self._source = source
		self._cache = cache
		self.volume = volume
		self._clock = clock
		self._voices: Dict[str, Voice] = {}
		self._started: Optional[float] = None
		self._duration = 0.0

	@classmethod
	def from_settings(cls, settings: Settings, cache: Optional[SampleCache] = None) -> "ToneRenderer":
		output = open_default_output(settings.sample_rate)
		if settings.backend == "samples":
			cache = cache or default_cache()
			return cls(output, SampleSource(cache), cache=cache, volume=settings.volume)
		return cls(output, SynthSource(settings.waveform), cache=cache, volume=settings.volume)

	@property
	def source(self) -> Optional[ToneSource]:
		return self._source

	@property
	def is_supported(self) -> bool:
		return self._output is not None

	@property
	def is_loading(self) -> bool:
		return self._cache.is_loading if self._cache is not None else False

	@property
	def load_progress(self) -> int:
		return self._cache.load_progress if self._cache is not None else 100

	@property
	def is_playing(self) -> bool:
		if self._started is None:
			return False
		if self._clock() - self._started >= self._duration:
			self._started = None
			return False
		return True

	@property
	def playback_progress(self) -> float:
		"""Elapsed share of the last requested duration, 0-100."""
		if not self.is_playing:
			return 0.0
		elapsed = self._clock() - self._started  # type: ignore[operator]
		return min(100.0, 100.0 * elapsed / self._duration)

	@property
	def sounding(self) -> Dict[str, Voice]:
		self._prune()
		return dict(self._voices)

	def _prune(self) -> None:
		if self._output is None:
			return
		now = self._output.now()
		for key in [k for k, v in self._voices.items() if v.finished(now)]:
			del self._voices[key]

	def _fade_out(self, voice: Voice) -> None:
		output = self._output
		with output.lock:  # type: ignore[union-attr]
			now = output.now()  # type: ignore[union-attr]
			voice.gain.cancel_and_hold(now)
			voice.gain.linear_ramp_to(SILENT, now + STOP_FADE)
			voice.stop(now + STOP_DELAY)

	def play(self, pitch: Pitch, duration: float = 1.5) -> bool:
		"""Start `pitch` now; returns False when nothing could be made audible.

		Retriggering a pitch that is still sounding fades the earlier instance
		out. Other pitches keep ringing underneath.
		"""
		self._started = self._clock()
		self._duration = float(duration)
		if self._output is None or self._source is None:
			return False
		self._prune()
		prior = self._voices.pop(pitch.key, None)
		if prior is not None:
			self._fade_out(prior)
		buffer = self._source.render(pitch, duration, self._output.sample_rate)
		if buffer is None:
			logger.warning("No sample available for %s, skipping playback", pitch.key)
			return False
		now = self._output.now()
		end = now + duration
		volume = self.volume

		def envelope(voice: Voice) -> None:
			voice.gain.set_value_at(volume, now)
			voice.gain.set_value_at(volume, max(now, end - END_RAMP))
			voice.gain.exponential_ramp_to(SILENT, end)
			voice.stop(end)

		voice = self._output.start(buffer, at=now, setup=envelope)
		self._voices[pitch.key] = voice
		return True

	def stop(self) -> None:
		self._started = None
		self._duration = 0.0
		if self._output is None:
			return
		self._prune()
		for voice in self._voices.values():
			self._fade_out(voice)
		self._voices.clear()
