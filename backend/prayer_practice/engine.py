"""
Practice Session Engine
=======================

State machine driving one practice session per mode.

Phases: loading_content -> ready -> {recording | playing | answering}
-> evaluating -> result_shown -> ready (next item).

- Speaking: the learner hears a phrase, records it, the recording is
  transcribed and scored, and the score is logged to history.
- Listening: the learner hears a prayer, answers a multiple-choice question,
  and correctness is checked locally against the stored answer key.

The engine is the only writer of its session state and its history store.
Infrastructure failures never leave the learner stuck: content falls back to
built-in banks, scoring to a default grade, and transcription failures to a
fixed zero-score result. Every transition publishes an immutable
``SessionState`` snapshot to subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine, Dict, List, NamedTuple, Optional, Set

from .audio import AudioPipeline, PlaybackSource
from .content import ContentGenerator
from .errors import AIGatewayError, DeviceUnavailable
from .history import HistoryStore
from .openai_client import AIGatewayClient
from .schemas import (
	AccuracyTier,
	AudioState,
	Language,
	ListeningItem,
	PracticeDifficulty,
	PracticeItem,
	PracticeMode,
	PracticeResult,
	PronunciationFeedback,
	SessionPhase,
	SessionState,
	SpeakingItem,
	SPEED_OPTIONS,
	Voice,
	resolve_language,
)
from .scoring import ScoringEvaluator
from .settings import settings

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

TRANSCRIPTION_FALLBACK_TEXT = "Could not transcribe audio"

TRANSCRIPTION_FAILURE_FEEDBACK = PronunciationFeedback(
	score=0,
	accuracy=AccuracyTier.UNKNOWN,
	feedback="Please try recording again.",
	improvements=[],
	tips="Speak clearly into the microphone.",
)

# Language hints understood by the transcription model
_TRANSCRIPTION_LANGUAGES: Dict[str, str] = {
	"ru": "ru",
	"zh": "zh",
	"es": "es",
	"pt-BR": "pt",
	"fr": "fr",
}


def transcription_language(language_code: str) -> str:
	return _TRANSCRIPTION_LANGUAGES.get(language_code, "en")


class _Evaluation(NamedTuple):
	transcript: str
	feedback: PronunciationFeedback
	completed: bool
	error: Optional[str] = None


# ============================================================================
# BASE ENGINE
# ============================================================================

class PracticeSessionEngine:
	"""Shared session mechanics: loading, navigation, snapshots and history logging."""

	mode: PracticeMode

	def __init__(
		self,
		content: ContentGenerator,
		audio: AudioPipeline,
		history: HistoryStore,
		*,
		language: Optional[str] = None,
		tradition: Optional[str] = None,
		difficulty: PracticeDifficulty = PracticeDifficulty.BEGINNER,
		voice: Optional[str] = None,
	) -> None:
		self.content = content
		self.audio = audio
		self.history = history
		self.language: Language = resolve_language(language or settings.default_language)
		self.tradition: str = tradition or settings.default_tradition
		self.difficulty = difficulty
		self.voice = Voice(voice or settings.default_voice)
		# Captures for this session always land on the same file
		self.session_key = f"{self.mode.value}_practice"
		self.items: List[PracticeItem] = []
		self.index = 0
		self._phase = SessionPhase.LOADING_CONTENT
		self._feedback: Optional[PronunciationFeedback] = None
		self._transcript = ""
		self._error: Optional[str] = None
		self._selected: Optional[int] = None
		self._is_correct: Optional[bool] = None
		# Bumped on every new attempt; results from older attempts are discarded
		self._attempt = 0
		self._recorded_attempt: Optional[int] = None
		self._playback_epoch = 0
		# Phase to return to when the current playback ends
		self._resume = SessionPhase.READY
		self._subscribers: List[asyncio.Queue] = []
		self._tasks: Set[asyncio.Task] = set()
		self._closed = False
		self.audio.register(self.session_key, self._audio_preempted)
		self.state = self._snapshot()

	# ---- observation ---------------------------------------------------------

	@property
	def phase(self) -> SessionPhase:
		return self._phase

	@property
	def current_item(self) -> Optional[PracticeItem]:
		if 0 <= self.index < len(self.items):
			return self.items[self.index]
		return None

	def subscribe(self) -> asyncio.Queue:
		queue: asyncio.Queue = asyncio.Queue()
		queue.put_nowait(self.state)
		self._subscribers.append(queue)
		return queue

	def unsubscribe(self, queue: asyncio.Queue) -> None:
		if queue in self._subscribers:
			self._subscribers.remove(queue)

	def _snapshot(self) -> SessionState:
		return SessionState(
			mode=self.mode,
			phase=self._phase,
			language=self.language.code,
			tradition=self.tradition,
			difficulty=self.difficulty,
			index=self.index,
			total=len(self.items),
			item=self.current_item,
			audio_state=self.audio.state,
			feedback=self._feedback,
			transcript=self._transcript,
			error=self._error,
			selected_answer=self._selected,
			is_correct=self._is_correct,
			attempt=self._attempt,
		)

	def _emit(self) -> SessionState:
		self.state = self._snapshot()
		for queue in list(self._subscribers):
			queue.put_nowait(self.state)
		return self.state

	# ---- content -------------------------------------------------------------

	async def load(
		self,
		*,
		language: Optional[str] = None,
		tradition: Optional[str] = None,
		difficulty: Optional[PracticeDifficulty] = None,
		voice: Optional[str] = None,
	) -> SessionState:
		if language:
			self.language = resolve_language(language)
		if tradition:
			self.tradition = tradition
		if difficulty is not None:
			self.difficulty = difficulty
		if voice:
			self.voice = Voice(voice)
		await self._release_audio()
		self.items = []
		self.index = 0
		self._clear_attempt()
		self._phase = SessionPhase.LOADING_CONTENT
		self._emit()
		# ContentGenerator never raises and never returns an empty list
		self.items = await self.content.generate(self.tradition, self.language, self.difficulty, self.mode)
		self._phase = SessionPhase.READY
		return self._emit()

	# ---- navigation ----------------------------------------------------------

	async def next_item(self) -> SessionState:
		if self.index >= len(self.items) - 1:
			return self.state
		self.index += 1
		return await self._enter_item()

	async def previous_item(self) -> SessionState:
		if self.index <= 0:
			return self.state
		self.index -= 1
		return await self._enter_item()

	async def _enter_item(self) -> SessionState:
		await self._release_audio()
		self._clear_attempt()
		self._phase = SessionPhase.READY
		return self._emit()

	def _clear_attempt(self) -> None:
		self._attempt += 1
		self._feedback = None
		self._transcript = ""
		self._error = None
		self._selected = None
		self._is_correct = None

	# ---- history -------------------------------------------------------------

	def _record(self, item_text: str, score: int, *, is_correct: Optional[bool] = None) -> None:
		if self._recorded_attempt == self._attempt:
			return
		self.history.append(
			PracticeResult(
				item_text=item_text,
				score=score,
				difficulty=self.difficulty,
				is_correct=is_correct,
			)
		)
		self._recorded_attempt = self._attempt

	def stats(self) -> Dict[str, Any]:
		return {"total_practiced": self.history.count, "average_score": self.history.mean_score()}

	# ---- audio helpers -------------------------------------------------------

	def _resume_phase(self, default: SessionPhase) -> SessionPhase:
		if self._phase == SessionPhase.PLAYING:
			return self._resume
		if self._phase == SessionPhase.RESULT_SHOWN:
			return SessionPhase.RESULT_SHOWN
		return default

	async def _play(self, text: str, speed: float, filename: str, resume: SessionPhase) -> SessionState:
		self._error = None
		self._playback_epoch += 1
		epoch = self._playback_epoch
		self._resume = resume
		self._phase = SessionPhase.PLAYING
		self._emit()
		source = await self.audio.play_text(
			text,
			voice=self.voice.value,
			speed=speed,
			filename=filename,
			owner=self.session_key,
		)
		if source == PlaybackSource.DEVICE_SPEECH:
			self._error = "Failed to generate audio. Using on-device speech."
		self._watch_playback(epoch)
		return self._emit()

	def _watch_playback(self, epoch: int) -> None:
		async def _watch() -> None:
			await self.audio.wait_until_idle()
			if self._phase == SessionPhase.PLAYING and self._playback_epoch == epoch:
				self._phase = self._resume
				self._emit()

		self._spawn(_watch())

	def _audio_preempted(self, lost: AudioState) -> None:
		# Another session took the device over
		if self._closed:
			return
		if lost == AudioState.RECORDING and self._phase == SessionPhase.RECORDING:
			self._error = "Recording stopped because audio started in another practice session."
			self._phase = SessionPhase.READY
			self._emit()
		elif lost == AudioState.PLAYING and self._phase == SessionPhase.PLAYING:
			self._playback_epoch += 1
			self._phase = self._resume
			self._emit()

	def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
		task = asyncio.create_task(coro)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	async def _release_audio(self) -> None:
		if self._phase == SessionPhase.PLAYING:
			self._playback_epoch += 1
		# The pipeline leaves audio owned by the other session untouched
		await self.audio.release(self.session_key)

	async def close(self) -> None:
		"""Stop audio and drop any in-flight work for this session."""
		self._closed = True
		await self._release_audio()
		self._attempt += 1
		for task in list(self._tasks):
			task.cancel()
		self._subscribers.clear()


# ============================================================================
# SPEAKING
# ============================================================================

class SpeakingSession(PracticeSessionEngine):
	mode = PracticeMode.SPEAKING

	def __init__(
		self,
		content: ContentGenerator,
		audio: AudioPipeline,
		history: HistoryStore,
		scorer: ScoringEvaluator,
		client: AIGatewayClient,
		**kwargs: Any,
	) -> None:
		super().__init__(content, audio, history, **kwargs)
		self.scorer = scorer
		self.client = client
		self._inflight: Optional[asyncio.Task] = None

	@property
	def playback_speed(self) -> float:
		return 0.8 if self.difficulty == PracticeDifficulty.BEGINNER else 1.0

	async def play_current(self) -> SessionState:
		item = self.current_item
		if item is None or self._phase in (SessionPhase.LOADING_CONTENT, SessionPhase.EVALUATING):
			return self.state
		resume = self._resume_phase(SessionPhase.READY)
		return await self._play(item.reference_text, self.playback_speed, "phrase_audio.mp3", resume)

	async def start_recording(self) -> SessionState:
		"""Begin a new attempt. Raises ``DeviceUnavailable`` if the microphone cannot start."""
		if self.current_item is None or self._phase == SessionPhase.LOADING_CONTENT:
			return self.state
		if self._phase == SessionPhase.EVALUATING:
			logger.info("New recording supersedes the evaluation of attempt %s", self._attempt)
		if self._phase == SessionPhase.PLAYING:
			self._playback_epoch += 1
		self._clear_attempt()
		try:
			await self.audio.start_capture(self.session_key, owner=self.session_key)
		except DeviceUnavailable as err:
			self._error = err.detail
			self._phase = SessionPhase.READY
			self._emit()
			raise
		self._phase = SessionPhase.RECORDING
		return self._emit()

	async def stop_recording(self) -> SessionState:
		item = self.current_item
		if self._phase != SessionPhase.RECORDING or not isinstance(item, SpeakingItem):
			return self.state
		attempt = self._attempt
		try:
			captured = await self.audio.stop_capture(owner=self.session_key)
		except DeviceUnavailable as err:
			self._error = err.detail
			self._phase = SessionPhase.READY
			self._emit()
			raise
		self._phase = SessionPhase.EVALUATING
		self._emit()

		task = asyncio.create_task(self._evaluate(item, captured.data if captured else b"", captured.path if captured else None))
		self._inflight = task
		try:
			evaluation = await task
		except asyncio.CancelledError:
			if self._closed:
				return self.state
			raise
		finally:
			if self._inflight is task:
				self._inflight = None

		if attempt != self._attempt:
			logger.info("Discarding evaluation of superseded attempt %s", attempt)
			return self.state
		self._transcript = evaluation.transcript
		self._feedback = evaluation.feedback
		self._error = evaluation.error
		self._phase = SessionPhase.RESULT_SHOWN
		if evaluation.completed:
			self._record(item.reference_text, evaluation.feedback.score)
		return self._emit()

	async def replay_recording(self) -> SessionState:
		capture = self.audio.last_capture
		if capture is None or self._phase in (SessionPhase.RECORDING, SessionPhase.EVALUATING, SessionPhase.LOADING_CONTENT):
			return self.state
		self._resume = self._resume_phase(SessionPhase.READY)
		self._playback_epoch += 1
		epoch = self._playback_epoch
		self._phase = SessionPhase.PLAYING
		await self.audio.play_clip(capture.path, owner=self.session_key)
		self._watch_playback(epoch)
		return self._emit()

	async def _evaluate(self, item: SpeakingItem, audio: bytes, path: Optional[str]) -> _Evaluation:
		if not audio:
			return _Evaluation(TRANSCRIPTION_FALLBACK_TEXT, TRANSCRIPTION_FAILURE_FEEDBACK, False, "No audio was captured. Please try again.")
		filename = Path(path).name if path else "audio.wav"
		try:
			transcript = await self.client.transcribe_audio(
				audio,
				transcription_language(self.language.code),
				filename=filename,
			)
		except AIGatewayError as err:
			logger.warning("Transcription failed (%s): %s", err.kind.value, err.detail)
			return _Evaluation(TRANSCRIPTION_FALLBACK_TEXT, TRANSCRIPTION_FAILURE_FEEDBACK, False, "Transcription failed. Please try again.")
		feedback = await self.scorer.evaluate(item.reference_text, transcript, self.language)
		return _Evaluation(transcript, feedback, True)

	async def close(self) -> None:
		if self._inflight is not None:
			self._inflight.cancel()
		await super().close()


# ============================================================================
# LISTENING
# ============================================================================

class ListeningSession(PracticeSessionEngine):
	mode = PracticeMode.LISTENING

	def __init__(self, *args: Any, **kwargs: Any) -> None:
		super().__init__(*args, **kwargs)
		self.playback_speed = 1.0

	def set_speed(self, speed: float) -> None:
		if speed not in SPEED_OPTIONS:
			raise ValueError(f"speed must be one of {SPEED_OPTIONS}")
		self.playback_speed = speed

	async def play_current(self, speed: Optional[float] = None) -> SessionState:
		item = self.current_item
		if item is None or self._phase == SessionPhase.LOADING_CONTENT:
			return self.state
		if speed is not None:
			self.set_speed(speed)
		resume = self._resume_phase(SessionPhase.ANSWERING)
		return await self._play(item.reference_text, self.playback_speed, f"listening_{item.id}.mp3", resume)

	async def stop_playback(self) -> SessionState:
		if self._phase != SessionPhase.PLAYING:
			return self.state
		self._playback_epoch += 1
		await self.audio.stop_playback(owner=self.session_key)
		self._phase = SessionPhase.RESULT_SHOWN if self._is_correct is not None else SessionPhase.ANSWERING
		return self._emit()

	def _check_choice(self, item: ListeningItem, choice: int) -> None:
		if choice < 0 or choice >= len(item.answers):
			raise ValueError(f"choice_index must be 0..{len(item.answers) - 1}")

	def select_answer(self, choice: int) -> SessionState:
		item = self.current_item
		if not isinstance(item, ListeningItem) or self._phase in (SessionPhase.RESULT_SHOWN, SessionPhase.LOADING_CONTENT):
			return self.state
		self._check_choice(item, choice)
		self._selected = choice
		if self._phase == SessionPhase.READY:
			self._phase = SessionPhase.ANSWERING
		return self._emit()

	def submit_answer(self, choice: Optional[int] = None) -> SessionState:
		"""Check the answer locally. A second submit for the same attempt changes nothing."""
		item = self.current_item
		if not isinstance(item, ListeningItem) or self._phase in (SessionPhase.RESULT_SHOWN, SessionPhase.LOADING_CONTENT):
			return self.state
		if choice is None:
			choice = self._selected
		if choice is None:
			raise ValueError("No answer selected")
		self._check_choice(item, choice)
		if self._phase == SessionPhase.PLAYING:
			# The watcher must not move the result back to answering
			self._playback_epoch += 1
		is_correct = choice == item.correct_answer_index
		self._selected = choice
		self._is_correct = is_correct
		self._phase = SessionPhase.RESULT_SHOWN
		self._record(item.reference_text, 100 if is_correct else 0, is_correct=is_correct)
		return self._emit()

	def retry(self) -> SessionState:
		"""Start an explicit re-attempt of the current exercise."""
		if self._phase != SessionPhase.RESULT_SHOWN:
			return self.state
		self._clear_attempt()
		self._phase = SessionPhase.ANSWERING
		return self._emit()

	def stats(self) -> Dict[str, Any]:
		data = super().stats()
		data["correct"] = self.history.correct_count()
		data["accuracy"] = self.history.accuracy()
		return data
