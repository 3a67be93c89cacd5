"""Audio output boundary.

`Mixer` is a clocked, offline voice mixer: voices are scheduled against its
clock, carry their own gain automation, and are summed block by block in
`render`. `SoundDeviceOutput` feeds the same mixer from a PortAudio stream.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import numpy as np
import numpy.typing as npt

from .audio import SR, GainSchedule

logger = logging.getLogger(__name__)


class Voice:
	"""One scheduled one-shot buffer with its own gain envelope."""

	def __init__(self, buffer: npt.NDArray[np.float32], start_time: float, sample_rate: int) -> None:
		self.buffer = buffer.astype(np.float32, copy=False)
		self.start_time = float(start_time)
		self.sample_rate = sample_rate
		self.gain = GainSchedule(1.0, origin=start_time)
		self.stop_time = self.start_time + len(self.buffer) / float(sample_rate)

	def stop(self, at: float) -> None:
		self.stop_time = max(self.start_time, min(self.stop_time, float(at)))

	def finished(self, now: float) -> bool:
		return now >= self.stop_time

	def render(self, times: npt.NDArray[np.float64]) -> npt.NDArray[np.float32]:
		idx = np.round((times - self.start_time) * self.sample_rate).astype(np.int64)
		live = (idx >= 0) & (idx < len(self.buffer)) & (times < self.stop_time)
		out = np.zeros(times.shape, dtype=np.float32)
		if np.any(live):
			out[live] = self.buffer[idx[live]] * self.gain.values(times[live])
		return out


class Mixer:
	"""Sums scheduled voices; its clock advances only as frames are rendered."""

	def __init__(self, sample_rate: int = SR) -> None:
		self.sample_rate = sample_rate
		self._frame = 0
		self._voices: List[Voice] = []
		self._lock = threading.Lock()

	def now(self) -> float:
		return self._frame / float(self.sample_rate)

	@property
	def voices(self) -> List[Voice]:
		with self._lock:
			return list(self._voices)

	@property
	def lock(self) -> threading.Lock:
		"""Held while rendering; take it to change a voice that is already live."""
		return self._lock

	def start(
		self,
		buffer: npt.NDArray[np.float32],
		at: Optional[float] = None,
		setup: Optional[Callable[[Voice], None]] = None,
	) -> Voice:
		"""Schedule a voice. `setup` shapes its gain and stop time before it goes live."""
		voice = Voice(buffer, self.now() if at is None else at, self.sample_rate)
		if setup is not None:
			setup(voice)
		with self._lock:
			self._voices.append(voice)
		return voice

	def render(self, frames: int) -> npt.NDArray[np.float32]:
		times = (self._frame + np.arange(frames, dtype=np.float64)) / self.sample_rate
		out = np.zeros(frames, dtype=np.float32)
		with self._lock:
			for voice in self._voices:
				out += voice.render(times)
			self._frame += frames
			now = self.now()
			self._voices = [v for v in self._voices if not v.finished(now)]
		return np.clip(out, -1.0, 1.0)


class SoundDeviceOutput(Mixer):
	"""Plays the mixer through the default PortAudio output device."""

	def __init__(self, sd, sample_rate: int = SR, blocksize: int = 256) -> None:
		super().__init__(sample_rate)
		self._stream = sd.OutputStream(
			samplerate=sample_rate,
			channels=1,
			dtype="float32",
			blocksize=blocksize,
			callback=self._callback,
		)
		self._stream.start()
		logger.info("Audio output stream opened at %d Hz", sample_rate)

	def _callback(self, outdata, frames, time_info, status) -> None:
		if status:
			logger.debug("Output stream status: %s", status)
		outdata[:, 0] = self.render(frames)

	def close(self) -> None:
		self._stream.stop()
		self._stream.close()
		logger.info("Audio output stream closed")


def open_default_output(sample_rate: int = SR) -> Optional[SoundDeviceOutput]:
	"""Open the platform output, or return None when audio is unsupported."""
	try:
		import sounddevice as sd
	except OSError as e:
		# PortAudio shared library missing
		logger.warning("Audio output unavailable: %s", e)
		return None
	try:
		sd.query_devices(kind="output")
		return SoundDeviceOutput(sd, sample_rate)
	except (sd.PortAudioError, ValueError) as e:
		logger.warning("No usable audio output device: %s", e)
		return None
