"""Process-wide cache of recorded note samples.

The archive is fetched at most once per cache instance; entries are kept as
undecoded bytes and decoded on first use. `default_cache()` hands out the one
instance the application shares between its engines.
"""

from __future__ import annotations

import asyncio
import io
import logging
import threading
import zipfile
import zlib
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Set, Tuple

import numpy as np
import numpy.typing as npt
import requests
import soundfile as sf

from .audio import to_mono
from .models import Pitch, Settings
from .storage import load_settings
from .theory import NOTE_NAMES, parse_note_key

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class SampleArchiveError(RuntimeError):
	pass


class DecodedSample(NamedTuple):
	data: npt.NDArray[np.float32]
	sample_rate: int


def fetch_archive(source: str, timeout: float = 30.0) -> bytes:
	"""Read the archive from an http(s) URL or a local path."""
	if source.startswith(("http://", "https://")):
		try:
			response = requests.get(source, timeout=timeout)
			response.raise_for_status()
		except requests.RequestException as e:
			raise SampleArchiveError(f"failed to download {source}: {e}") from e
		return response.content
	try:
		return Path(source).expanduser().read_bytes()
	except OSError as e:
		raise SampleArchiveError(f"failed to read {source}: {e}") from e


def decode(raw: bytes) -> DecodedSample:
	data, sr = sf.read(io.BytesIO(raw), dtype="float32")
	return DecodedSample(to_mono(data), int(sr))


class SampleCache:
	def __init__(
		self,
		source: str,
		fetch: Callable[[str], bytes] = fetch_archive,
		eager_octaves: Tuple[int, int] = (2, 6),
	) -> None:
		self.source = source
		self._fetch = fetch
		self.eager_octaves = eager_octaves
		self._raw: Dict[str, bytes] = {}
		self._decoded: Dict[str, DecodedSample] = {}
		self._failed: Set[str] = set()
		self._decode_lock = threading.Lock()
		self._observers: List[ProgressCallback] = []
		self._task: Optional[asyncio.Future] = None
		self._progress = 0
		self._loading = False
		self._loaded = False

	@property
	def is_loading(self) -> bool:
		return self._loading

	@property
	def is_loaded(self) -> bool:
		return self._loaded

	@property
	def load_progress(self) -> int:
		return self._progress

	def keys(self) -> List[str]:
		return sorted(self._raw)

	def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
		"""Receive progress updates; the current value is delivered immediately."""
		self._observers.append(callback)
		callback(self._progress)

		def unsubscribe() -> None:
			if callback in self._observers:
				self._observers.remove(callback)

		return unsubscribe

	def _report(self, value: int) -> None:
		value = max(0, min(100, value))
		if value <= self._progress:
			return
		self._progress = value
		for cb in list(self._observers):
			cb(value)

	async def preload(self) -> None:
		"""Fetch and index the archive; concurrent callers share one load."""
		if self._loaded:
			return
		if self._task is None:
			self._task = asyncio.ensure_future(self._load())
		await asyncio.shield(self._task)

	async def _load(self) -> None:
		self._loading = True
		logger.info("Loading samples from %s", self.source)
		try:
			payload = await asyncio.to_thread(self._fetch, self.source)
			try:
				archive = zipfile.ZipFile(io.BytesIO(payload))
			except zipfile.BadZipFile as e:
				raise SampleArchiveError(f"{self.source} is not a zip archive: {e}") from e
			with archive:
				entries = [info for info in archive.infolist() if not info.is_dir()]
				total = len(entries)
				for i, info in enumerate(entries, start=1):
					key = parse_note_key(info.filename)
					if key is None:
						logger.warning("Skipping archive entry %s: not a note sample", info.filename)
					elif key not in self._raw:
						try:
							self._raw[key] = archive.read(info)
						except (zipfile.BadZipFile, RuntimeError, NotImplementedError, zlib.error) as e:
							logger.warning("Skipping unreadable archive entry %s: %s", info.filename, e)
					self._report(int(round(i / float(total) * 100)))
					await asyncio.sleep(0)
			lo, hi = self.eager_octaves
			await asyncio.to_thread(self._decode_octaves, lo, hi)
			logger.info("Loaded %d samples", len(self._raw))
		except (SampleArchiveError, zipfile.BadZipFile, OSError) as e:
			logger.error("Sample preload failed: %s", e)
		finally:
			self._report(100)
			self._loading = False
			self._loaded = True

	def _decode_octaves(self, lo: int, hi: int) -> None:
		for octave in range(lo, hi + 1):
			for name in NOTE_NAMES:
				key = f"{name}{octave}"
				if key in self._raw:
					self._decode_key(key)

	def _decode_key(self, key: str) -> Optional[DecodedSample]:
		with self._decode_lock:
			if key in self._decoded:
				return self._decoded[key]
			if key in self._failed:
				return None
			raw = self._raw.get(key)
			if raw is None:
				logger.warning("No sample for %s in archive", key)
				self._failed.add(key)
				return None
			try:
				sample = decode(raw)
			except (sf.LibsndfileError, RuntimeError, ValueError) as e:
				logger.warning("Failed to decode sample %s: %s", key, e)
				self._failed.add(key)
				return None
			self._decoded[key] = sample
			return sample

	def lookup(self, pitch: Pitch) -> Optional[DecodedSample]:
		"""Decoded sample for a pitch, decoding synchronously on first use."""
		return self._decode_key(pitch.key)

	def is_decoded(self, pitch: Pitch) -> bool:
		return pitch.key in self._decoded

	async def get_or_decode(self, pitch: Pitch) -> Optional[DecodedSample]:
		if pitch.key in self._decoded:
			return self._decoded[pitch.key]
		return await asyncio.to_thread(self._decode_key, pitch.key)


def cache_from_settings(settings: Settings) -> SampleCache:
	return SampleCache(settings.samples_source, eager_octaves=settings.eager_octaves)


@lru_cache(maxsize=1)
def default_cache() -> SampleCache:
	"""The process-wide cache; built on first call and never torn down."""
	return cache_from_settings(load_settings())
