from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .theory import (
	DIFFICULTY_RANGES,
	INTERVAL_NAMES,
	MAX_SUPPORTED_OCTAVE,
	MIN_SUPPORTED_OCTAVE,
	NOTE_NAMES,
	SEMITONES,
	key_number,
	note_index,
	note_key,
	pitch_to_frequency,
)


Difficulty = Literal["easy", "medium", "hard"]
GameMode = Literal["single-note", "interval"]
Backend = Literal["samples", "synth"]
Waveform = Literal["harmonics", "sine", "triangle", "saw"]
Stage = Literal["listen", "guess", "result"]

DEFAULT_SAMPLES = str(Path.home() / ".pitcharcade" / "samples" / "piano.zip")


class Pitch(BaseModel):
	model_config = ConfigDict(frozen=True)

	pitch_class: str
	octave: int

	@field_validator("pitch_class")
	@classmethod
	def _canonical_class(cls, v: str) -> str:
		return NOTE_NAMES[note_index(v)]

	@property
	def index(self) -> int:
		return note_index(self.pitch_class)

	@property
	def key(self) -> str:
		return note_key(self.pitch_class, self.octave)

	@property
	def key_number(self) -> int:
		return key_number(self.pitch_class, self.octave)

	@property
	def frequency(self) -> float:
		return pitch_to_frequency(self.pitch_class, self.octave)

	def __lt__(self, other: "Pitch") -> bool:
		return (self.octave, self.index) < (other.octave, other.index)

	def __str__(self) -> str:
		return self.key


class IntervalKind(BaseModel):
	model_config = ConfigDict(frozen=True)

	semitones: int = Field(ge=1, le=12)
	name: str
	short: str


INTERVALS: Tuple[IntervalKind, ...] = tuple(
	IntervalKind(semitones=d, name=INTERVAL_NAMES[short], short=short) for short, d in SEMITONES.items()
)


def interval_by_name(name: str) -> IntervalKind:
	"""Look up an interval by display name ('Perfect 5th') or short code ('P5')."""
	for kind in INTERVALS:
		if name == kind.name or name == kind.short:
			return kind
	raise KeyError(name)


class DifficultyProfile(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: Difficulty
	min_octave: int = Field(ge=MIN_SUPPORTED_OCTAVE, le=MAX_SUPPORTED_OCTAVE)
	max_octave: int = Field(ge=MIN_SUPPORTED_OCTAVE, le=MAX_SUPPORTED_OCTAVE)

	@model_validator(mode="after")
	def _ordered(self) -> "DifficultyProfile":
		if self.min_octave > self.max_octave:
			raise ValueError("min_octave must not exceed max_octave")
		return self

	def contains(self, octave: int) -> bool:
		return self.min_octave <= octave <= self.max_octave


def difficulty_profile(name: str) -> DifficultyProfile:
	lo, hi = DIFFICULTY_RANGES[name]
	return DifficultyProfile(name=name, min_octave=lo, max_octave=hi)  # type: ignore[arg-type]


class Settings(BaseModel):
	difficulty: Difficulty = Field(default="medium")
	mode: GameMode = Field(default="single-note")
	backend: Backend = Field(default="samples")
	waveform: Waveform = Field(default="harmonics")
	note_duration: float = Field(default=1.5, ge=0.1, le=10.0)
	interval_gap: float = Field(default=0.4, ge=0.0, le=5.0)
	volume: float = Field(default=0.9, ge=0.0, le=1.0)
	sample_rate: int = Field(default=44100, ge=8000, le=192000)
	samples_source: str = Field(default=DEFAULT_SAMPLES)
	eager_octaves: Tuple[int, int] = Field(default=(2, 6))
	carry_wrapped_octave: bool = Field(default=False)


class Score(BaseModel):
	model_config = ConfigDict(frozen=True)

	attempts: int = 0
	total_rounds: int = 0
	correct_rounds: int = 0

	def record(self, correct: bool) -> "Score":
		return Score(
			attempts=self.attempts + 1,
			total_rounds=self.total_rounds + 1,
			correct_rounds=self.correct_rounds + (1 if correct else 0),
		)


# Round stages. Each stage carries only the fields meaningful in it.

class Listen(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Literal["listen"] = "listen"


class NoteGuess(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Literal["guess"] = "guess"
	target: Pitch
	pitch_class: Optional[str] = None
	octave: Optional[int] = None


class NoteResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Literal["result"] = "result"
	target: Pitch
	guess: Pitch
	is_correct: bool


class IntervalGuess(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Literal["guess"] = "guess"
	first: Pitch
	second: Pitch
	target: IntervalKind
	interval: Optional[str] = None


class IntervalResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Literal["result"] = "result"
	first: Pitch
	second: Pitch
	target: IntervalKind
	guess: IntervalKind
	is_correct: bool


NotePhase = Union[Listen, NoteGuess, NoteResult]
IntervalPhase = Union[Listen, IntervalGuess, IntervalResult]


class SingleNoteState(BaseModel):
	"""Read-only snapshot handed to the presentation layer."""

	model_config = ConfigDict(frozen=True)

	stage: Stage
	target_pitch: Optional[Pitch] = None
	guessed_pitch_class: Optional[str] = None
	guessed_octave: Optional[int] = None
	is_correct: Optional[bool] = None
	attempts: int = 0
	total_rounds: int = 0
	correct_rounds: int = 0
	difficulty: Difficulty = "medium"


class IntervalState(BaseModel):
	model_config = ConfigDict(frozen=True)

	stage: Stage
	first_pitch: Optional[Pitch] = None
	second_pitch: Optional[Pitch] = None
	target_interval: Optional[IntervalKind] = None
	guessed_interval: Optional[IntervalKind] = None
	is_correct: Optional[bool] = None
	total_rounds: int = 0
	correct_rounds: int = 0
	difficulty: Difficulty = "medium"
