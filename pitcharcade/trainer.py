from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional, Tuple, Union

from .models import (
	INTERVALS,
	Difficulty,
	DifficultyProfile,
	GameMode,
	IntervalGuess,
	IntervalKind,
	IntervalPhase,
	IntervalResult,
	IntervalState,
	Listen,
	NoteGuess,
	NotePhase,
	NoteResult,
	Pitch,
	Score,
	Settings,
	SingleNoteState,
	difficulty_profile,
	interval_by_name,
)
from .player import ToneRenderer
from .theory import NOTE_NAMES, interval_pair_indices, note_index

logger = logging.getLogger(__name__)


def draw_octave(profile: DifficultyProfile, rng: random.Random) -> int:
	return rng.randint(profile.min_octave, profile.max_octave)


def draw_pitch(profile: DifficultyProfile, rng: random.Random) -> Pitch:
	return Pitch(pitch_class=rng.choice(NOTE_NAMES), octave=draw_octave(profile, rng))


def draw_interval(profile: DifficultyProfile, rng: random.Random) -> Tuple[Pitch, Pitch, IntervalKind]:
	"""Pick an interval and a pair of notes spanning it inside one octave.

	The first note is drawn from [0, 12 - semitones] so the pair fits the
	reference octave; the second index wraps modulo 12, which only happens
	when the pair reaches the next C. Both notes keep the drawn octave number.
	"""
	octave = draw_octave(profile, rng)
	kind = rng.choice(INTERVALS)
	first, second = interval_pair_indices(rng.randint(0, 12 - kind.semitones), kind.semitones)
	return (
		Pitch(pitch_class=NOTE_NAMES[first], octave=octave),
		Pitch(pitch_class=NOTE_NAMES[second], octave=octave),
		kind,
	)


class _RoundEngine:
	def __init__(
		self,
		difficulty: Optional[Difficulty] = None,
		renderer: Optional[ToneRenderer] = None,
		settings: Optional[Settings] = None,
		rng: Optional[random.Random] = None,
	) -> None:
		self.settings = settings or Settings(difficulty=difficulty or "medium")
		difficulty = difficulty or self.settings.difficulty
		self.renderer = renderer
		self.rng = rng or random.Random()
		self._initial_difficulty = difficulty
		self.profile = difficulty_profile(difficulty)
		self.score = Score()
		self.phase: Union[NotePhase, IntervalPhase] = Listen()

	@property
	def difficulty(self) -> Difficulty:
		return self.profile.name

	@property
	def stage(self) -> str:
		return self.phase.stage

	@property
	def min_octave(self) -> int:
		return self.profile.min_octave

	@property
	def max_octave(self) -> int:
		return self.profile.max_octave

	@property
	def can_replay(self) -> bool:
		return self.phase.stage == "guess"

	def _ignored(self, op: str) -> None:
		logger.debug("%s ignored in stage %s", op, self.phase.stage)

	def next_round(self) -> None:
		if self.phase.stage != "result":
			self._ignored("next_round")
			return
		self.phase = Listen()

	def set_difficulty(self, difficulty: Difficulty) -> None:
		"""Change the octave range. A round in progress is abandoned, score is kept."""
		self.profile = difficulty_profile(difficulty)
		if self.phase.stage != "listen":
			logger.debug("Difficulty changed mid-round, abandoning round")
		self.phase = Listen()

	def reset_session(self) -> None:
		self.profile = difficulty_profile(self._initial_difficulty)
		self.score = Score()
		self.phase = Listen()


class SingleNoteSession(_RoundEngine):
	"""Identify one note: pitch class and octave must both match."""

	phase: NotePhase

	@property
	def state(self) -> SingleNoteState:
		p = self.phase
		fields = dict(
			stage=p.stage,
			attempts=self.score.attempts,
			total_rounds=self.score.total_rounds,
			correct_rounds=self.score.correct_rounds,
			difficulty=self.difficulty,
		)
		if isinstance(p, NoteGuess):
			fields.update(target_pitch=p.target, guessed_pitch_class=p.pitch_class, guessed_octave=p.octave)
		elif isinstance(p, NoteResult):
			fields.update(
				target_pitch=p.target,
				guessed_pitch_class=p.guess.pitch_class,
				guessed_octave=p.guess.octave,
				is_correct=p.is_correct,
			)
		return SingleNoteState(**fields)

	@property
	def can_submit(self) -> bool:
		p = self.phase
		return isinstance(p, NoteGuess) and p.pitch_class is not None and p.octave is not None

	def start_round(self) -> Pitch:
		if self.phase.stage != "listen":
			logger.debug("start_round called in stage %s, starting over", self.phase.stage)
		target = draw_pitch(self.profile, self.rng)
		self.phase = NoteGuess(target=target)
		return target

	def select_pitch_class(self, pitch_class: str) -> None:
		name = NOTE_NAMES[note_index(pitch_class)]
		if not isinstance(self.phase, NoteGuess):
			self._ignored("select_pitch_class")
			return
		self.phase = self.phase.model_copy(update={"pitch_class": name})

	def select_octave(self, octave: int) -> None:
		if not isinstance(self.phase, NoteGuess):
			self._ignored("select_octave")
			return
		self.phase = self.phase.model_copy(update={"octave": int(octave)})

	def submit_guess(self) -> Optional[bool]:
		"""Grade the guess. Returns None when there is nothing to submit."""
		p = self.phase
		if not isinstance(p, NoteGuess) or p.pitch_class is None or p.octave is None:
			self._ignored("submit_guess")
			return None
		guess = Pitch(pitch_class=p.pitch_class, octave=p.octave)
		is_correct = guess == p.target
		self.score = self.score.record(is_correct)
		self.phase = NoteResult(target=p.target, guess=guess, is_correct=is_correct)
		return is_correct

	def play_target(self) -> bool:
		p = self.phase
		if self.renderer is None or not isinstance(p, NoteGuess):
			return False
		return self.renderer.play(p.target, self.settings.note_duration)


class IntervalSession(_RoundEngine):
	"""Name the interval between two notes played one after the other."""

	phase: IntervalPhase

	@property
	def state(self) -> IntervalState:
		p = self.phase
		fields = dict(
			stage=p.stage,
			total_rounds=self.score.total_rounds,
			correct_rounds=self.score.correct_rounds,
			difficulty=self.difficulty,
		)
		if isinstance(p, IntervalGuess):
			guessed = interval_by_name(p.interval) if p.interval is not None else None
			fields.update(first_pitch=p.first, second_pitch=p.second, target_interval=p.target, guessed_interval=guessed)
		elif isinstance(p, IntervalResult):
			fields.update(
				first_pitch=p.first,
				second_pitch=p.second,
				target_interval=p.target,
				guessed_interval=p.guess,
				is_correct=p.is_correct,
			)
		return IntervalState(**fields)

	@property
	def can_submit(self) -> bool:
		p = self.phase
		return isinstance(p, IntervalGuess) and p.interval is not None

	def start_round(self) -> Tuple[Pitch, Pitch]:
		if self.phase.stage != "listen":
			logger.debug("start_round called in stage %s, starting over", self.phase.stage)
		first, second, kind = draw_interval(self.profile, self.rng)
		self.phase = IntervalGuess(first=first, second=second, target=kind)
		return first, second

	def select_interval(self, name: str) -> None:
		kind = interval_by_name(name)
		if not isinstance(self.phase, IntervalGuess):
			self._ignored("select_interval")
			return
		self.phase = self.phase.model_copy(update={"interval": kind.name})

	def submit_guess(self) -> Optional[bool]:
		p = self.phase
		if not isinstance(p, IntervalGuess) or p.interval is None:
			self._ignored("submit_guess")
			return None
		guess = interval_by_name(p.interval)
		is_correct = guess.name == p.target.name
		self.score = self.score.record(is_correct)
		self.phase = IntervalResult(first=p.first, second=p.second, target=p.target, guess=guess, is_correct=is_correct)
		return is_correct

	def sounding_pair(self) -> Optional[Tuple[Pitch, Pitch]]:
		"""The two pitches as they should be heard."""
		p = self.phase
		if not isinstance(p, IntervalGuess):
			return None
		second = p.second
		if self.settings.carry_wrapped_octave and p.first.index + p.target.semitones >= 12:
			second = Pitch(pitch_class=second.pitch_class, octave=second.octave + 1)
		return p.first, second

	async def play_target(self) -> bool:
		pair = self.sounding_pair()
		if self.renderer is None or pair is None:
			return False
		first, second = pair
		self.renderer.play(first, self.settings.note_duration)
		await asyncio.sleep(self.settings.interval_gap)
		return self.renderer.play(second, self.settings.note_duration)


class ArcadeSession:
	"""Both game modes over one shared renderer, with mode switching."""

	def __init__(
		self,
		renderer: Optional[ToneRenderer] = None,
		settings: Optional[Settings] = None,
		rng: Optional[random.Random] = None,
	) -> None:
		self.settings = settings or Settings()
		self.renderer = renderer
		rng = rng or random.Random()
		self.single_note = SingleNoteSession(self.settings.difficulty, renderer, self.settings, rng)
		self.interval = IntervalSession(self.settings.difficulty, renderer, self.settings, rng)
		self.mode: GameMode = self.settings.mode

	@property
	def active(self) -> Union[SingleNoteSession, IntervalSession]:
		return self.single_note if self.mode == "single-note" else self.interval

	@property
	def difficulty(self) -> Difficulty:
		return self.active.difficulty

	def switch_mode(self, mode: GameMode) -> None:
		if mode not in ("single-note", "interval"):
			raise ValueError(f"unknown mode: {mode!r}")
		if self.renderer is not None:
			self.renderer.stop()
		self.mode = mode

	def set_difficulty(self, difficulty: Difficulty) -> None:
		self.active.set_difficulty(difficulty)

	async def play(self) -> bool:
		"""Start a round when idle, otherwise replay the current target."""
		engine = self.active
		if engine.stage == "listen":
			engine.start_round()
		elif not engine.can_replay:
			return False
		if isinstance(engine, IntervalSession):
			return await engine.play_target()
		return engine.play_target()
