import re
from typing import Dict, Optional, Tuple

NOTE_NAMES: Tuple[str, ...] = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

SEMITONES = {
	"m2": 1,
	"M2": 2,
	"m3": 3,
	"M3": 4,
	"P4": 5,
	"TT": 6,
	"P5": 7,
	"m6": 8,
	"M6": 9,
	"m7": 10,
	"M7": 11,
	"P8": 12,
}

INTERVAL_NAMES = {
	"m2": "Minor 2nd",
	"M2": "Major 2nd",
	"m3": "Minor 3rd",
	"M3": "Major 3rd",
	"P4": "Perfect 4th",
	"TT": "Tritone",
	"P5": "Perfect 5th",
	"m6": "Minor 6th",
	"M6": "Major 6th",
	"m7": "Minor 7th",
	"M7": "Major 7th",
	"P8": "Octave",
}

A4_FREQ = 440.0
# Piano key number of A4 (key = octave * 12 + note index + 1)
A4_KEY = 49

# Octaves present in the sample archive
MIN_SUPPORTED_OCTAVE = 0
MAX_SUPPORTED_OCTAVE = 7

DIFFICULTY_RANGES: Dict[str, Tuple[int, int]] = {
	"easy": (3, 5),
	"medium": (2, 6),
	"hard": (0, 7),
}

_FLAT_ALIASES = {"Db": "C#", "Eb": "D#", "Gb": "F#", "Ab": "G#", "Bb": "A#"}

# <letter><optional accidental><octave>.<ext>, accidental '#', 's' (sharp) or 'b' (flat)
_NOTE_FILE_RE = re.compile(r"^([A-Ga-g])([#sb]?)(\d)\.(?:mp3|wav|ogg|flac|aiff?)$")


def note_index(pitch_class: str) -> int:
	if pitch_class in _FLAT_ALIASES:
		pitch_class = _FLAT_ALIASES[pitch_class]
	try:
		return NOTE_NAMES.index(pitch_class)
	except ValueError:
		raise ValueError(f"unknown pitch class: {pitch_class!r}") from None


def key_number(pitch_class: str, octave: int) -> int:
	return octave * 12 + note_index(pitch_class) + 1


def pitch_to_frequency(pitch_class: str, octave: int) -> float:
	"""Frequency in Hz of a pitch, equal temperament with A4 = 440 Hz."""
	return float(A4_FREQ * (2.0 ** ((key_number(pitch_class, octave) - A4_KEY) / 12.0)))


def note_key(pitch_class: str, octave: int) -> str:
	return f"{NOTE_NAMES[note_index(pitch_class)]}{octave}"


def parse_note_key(filename: str) -> Optional[str]:
	"""Map an archive entry name such as 'piano/Db4.mp3' to a note-key ('C#4').

	Returns None for names that do not follow the sample naming pattern.
	"""
	base = filename.replace("\\", "/").rsplit("/", 1)[-1]
	m = _NOTE_FILE_RE.match(base)
	if m is None:
		return None
	letter, accidental, octave_s = m.groups()
	idx = NOTE_NAMES.index(letter.upper())
	if accidental in ("#", "s"):
		idx += 1
	elif accidental == "b":
		idx -= 1
	# Cb / B# cross the octave boundary
	octave = int(octave_s) + idx // 12
	return f"{NOTE_NAMES[idx % 12]}{octave}"


def interval_pair_indices(first_index: int, semitones: int) -> Tuple[int, int]:
	return first_index, (first_index + semitones) % 12
