import asyncio
import time

import pytest

from pitcharcade import samples
from pitcharcade.models import Pitch
from pitcharcade.samples import SampleArchiveError, SampleCache, default_cache, fetch_archive

from conftest import CountingFetch, make_archive, note_wav


def _pitch(key: str) -> Pitch:
	return Pitch(pitch_class=key[:-1], octave=int(key[-1]))


def test_preload_indexes_matching_entries(archive_cache):
	asyncio.run(archive_cache.preload())
	assert archive_cache.keys() == ["A4", "C#4", "C4", "C7", "E4"]
	assert archive_cache.load_progress == 100
	assert not archive_cache.is_loading
	assert archive_cache.is_loaded


def test_preload_eagerly_decodes_core_octaves_only(archive_cache):
	asyncio.run(archive_cache.preload())
	assert archive_cache.is_decoded(_pitch("C4"))
	assert archive_cache.is_decoded(_pitch("C#4"))
	# octave 7 sits outside the eager range and is decoded on demand
	assert not archive_cache.is_decoded(_pitch("C7"))
	sample = asyncio.run(archive_cache.get_or_decode(_pitch("C7")))
	assert sample is not None and sample.sample_rate == 8000
	assert archive_cache.is_decoded(_pitch("C7"))


def test_missing_or_broken_samples_are_absent(archive_cache):
	asyncio.run(archive_cache.preload())
	assert archive_cache.lookup(_pitch("G2")) is None
	assert archive_cache.lookup(_pitch("E4")) is None


def test_decoded_samples_are_memoized(archive_cache):
	asyncio.run(archive_cache.preload())
	first = archive_cache.lookup(_pitch("A4"))
	assert archive_cache.lookup(_pitch("A4")) is first


def test_concurrent_preloads_share_one_fetch():
	fetch = CountingFetch({"mem://a.zip": make_archive([f"{n}4.wav" for n in "CDEFGAB"])})
	cache = SampleCache("mem://a.zip", fetch=fetch)
	seen = []
	cache.subscribe(seen.append)

	async def main():
		await asyncio.gather(cache.preload(), cache.preload(), cache.preload())
		await cache.preload()

	asyncio.run(main())
	assert fetch.calls == ["mem://a.zip"]
	assert seen[0] == 0
	assert seen == sorted(seen)
	assert seen[-1] == 100


def test_progress_is_rounded_share_of_entries():
	fetch = CountingFetch({"mem://b.zip": make_archive(["C4.wav", "D4.wav", "E4.wav"])})
	cache = SampleCache("mem://b.zip", fetch=fetch)
	seen = []
	cache.subscribe(seen.append)
	asyncio.run(cache.preload())
	assert seen == [0, 33, 67, 100]


def test_late_subscriber_receives_current_progress(archive_cache):
	asyncio.run(archive_cache.preload())
	seen = []
	unsubscribe = archive_cache.subscribe(seen.append)
	assert seen == [100]
	unsubscribe()


def test_fetch_failure_settles_without_samples():
	def failing(source):
		raise SampleArchiveError("offline")

	cache = SampleCache("https://example.invalid/piano.zip", fetch=failing)
	asyncio.run(cache.preload())
	assert not cache.is_loading
	assert cache.keys() == []
	assert cache.lookup(Pitch(pitch_class="C", octave=4)) is None


def test_non_zip_payload_is_logged_not_raised(caplog):
	cache = SampleCache("mem://junk", fetch=lambda source: b"definitely not a zip")
	asyncio.run(cache.preload())
	assert not cache.is_loading
	assert "not a zip archive" in caplog.text


def test_fetch_archive_reads_local_file(tmp_path):
	p = tmp_path / "piano.zip"
	p.write_bytes(b"payload")
	assert fetch_archive(str(p)) == b"payload"
	with pytest.raises(SampleArchiveError):
		fetch_archive(str(tmp_path / "missing.zip"))


def _corrupt_first_entry(data: bytes) -> bytes:
	wav = note_wav()
	pos = data.find(wav) + len(wav) // 2
	return data[:pos] + bytes([data[pos] ^ 0xFF]) + data[pos + 1:]


def _mark_first_entry_encrypted(data: bytes) -> bytes:
	out = bytearray(data)
	# general purpose flag bit 0 in the local header and the central directory
	for signature, offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
		out[out.find(signature) + offset] |= 0x01
	return bytes(out)


def test_corrupt_entry_is_skipped_and_rest_still_load(caplog):
	archive = _corrupt_first_entry(make_archive(["C4.wav", "D4.wav", "E4.wav"]))
	cache = SampleCache("mem://crc.zip", fetch=CountingFetch({"mem://crc.zip": archive}))
	asyncio.run(cache.preload())
	assert cache.keys() == ["D4", "E4"]
	assert cache.lookup(_pitch("E4")) is not None
	assert cache.load_progress == 100
	assert "Skipping unreadable archive entry C4.wav" in caplog.text


def test_encrypted_entry_does_not_escape_preload(caplog):
	archive = _mark_first_entry_encrypted(make_archive(["C4.wav", "D4.wav"]))
	cache = SampleCache("mem://enc.zip", fetch=CountingFetch({"mem://enc.zip": archive}))
	asyncio.run(cache.preload())
	assert not cache.is_loading
	assert cache.keys() == ["D4"]
	assert "Skipping unreadable archive entry C4.wav" in caplog.text


def test_concurrent_decodes_of_one_note_run_once(archive_cache, monkeypatch):
	asyncio.run(archive_cache.preload())
	calls = []
	real_decode = samples.decode

	def counting_decode(raw):
		calls.append(len(raw))
		time.sleep(0.05)
		return real_decode(raw)

	monkeypatch.setattr(samples, "decode", counting_decode)
	c7 = _pitch("C7")

	async def main():
		return await asyncio.gather(archive_cache.get_or_decode(c7), archive_cache.get_or_decode(c7))

	first, second = asyncio.run(main())
	assert len(calls) == 1
	assert first is not None and first is second


def test_default_cache_is_process_wide(tmp_path, monkeypatch):
	monkeypatch.setenv("PITCHARCADE_HOME", str(tmp_path))
	monkeypatch.setenv("PITCHARCADE_SAMPLES", "mem://shared.zip")
	default_cache.cache_clear()
	try:
		cache = default_cache()
		assert default_cache() is cache
		assert cache.source == "mem://shared.zip"
	finally:
		default_cache.cache_clear()
