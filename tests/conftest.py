import io
import random
import zipfile
from typing import Dict, List

import numpy as np
import pytest

from pitcharcade.audio import wav_bytes
from pitcharcade.output import Mixer
from pitcharcade.player import SynthSource, ToneRenderer
from pitcharcade.samples import SampleCache


class ManualClock:
	def __init__(self, t: float = 100.0) -> None:
		self.t = t

	def __call__(self) -> float:
		return self.t

	def advance(self, dt: float) -> None:
		self.t += dt


def note_wav(freq: float = 440.0, dur: float = 0.05, sr: int = 8000) -> bytes:
	t = np.arange(int(sr * dur), dtype=np.float32) / sr
	return wav_bytes(0.5 * np.sin(2.0 * np.pi * freq * t).astype(np.float32), sr)


def make_archive(names: List[str]) -> bytes:
	buf = io.BytesIO()
	with zipfile.ZipFile(buf, "w") as zf:
		for name in names:
			payload = note_wav() if name.lower().endswith(".wav") else b"not audio"
			zf.writestr(name, payload)
	return buf.getvalue()


class CountingFetch:
	"""Serves in-memory archives and counts how often it was asked."""

	def __init__(self, archives: Dict[str, bytes]) -> None:
		self.archives = archives
		self.calls: List[str] = []

	def __call__(self, source: str) -> bytes:
		self.calls.append(source)
		return self.archives[source]


@pytest.fixture
def clock() -> ManualClock:
	return ManualClock()


@pytest.fixture
def mixer() -> Mixer:
	return Mixer(sample_rate=8000)


@pytest.fixture
def synth_renderer(mixer: Mixer, clock: ManualClock) -> ToneRenderer:
	return ToneRenderer(mixer, SynthSource("sine"), volume=1.0, clock=clock)


@pytest.fixture
def rng() -> random.Random:
	return random.Random(1234)


@pytest.fixture
def archive_cache() -> SampleCache:
	names = ["piano/C4.wav", "piano/Db4.wav", "piano/A4.wav", "piano/C7.wav", "README.txt", "piano/E4.ogg"]
	fetch = CountingFetch({"mem://piano.zip": make_archive(names)})
	return SampleCache("mem://piano.zip", fetch=fetch, eager_octaves=(2, 6))
