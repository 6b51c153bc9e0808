from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# ENUMS
# ============================================================================

class PracticeDifficulty(str, Enum):
	BEGINNER = "beginner"
	INTERMEDIATE = "intermediate"
	ADVANCED = "advanced"

	@property
	def display_name(self) -> str:
		return self.value.capitalize()


class PracticeMode(str, Enum):
	SPEAKING = "speaking"
	LISTENING = "listening"


class AccuracyTier(str, Enum):
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"
	UNKNOWN = "unknown"


class AudioState(str, Enum):
	IDLE = "idle"
	RECORDING = "recording"
	PLAYING = "playing"


class SessionPhase(str, Enum):
	LOADING_CONTENT = "loading_content"
	READY = "ready"
	RECORDING = "recording"
	PLAYING = "playing"
	ANSWERING = "answering"
	EVALUATING = "evaluating"
	RESULT_SHOWN = "result_shown"


class Voice(str, Enum):
	ALLOY = "alloy"
	ECHO = "echo"
	FABLE = "fable"
	ONYX = "onyx"
	NOVA = "nova"
	SHIMMER = "shimmer"

	@property
	def display_name(self) -> str:
		return _VOICE_NAMES[self]


_VOICE_NAMES = {
	Voice.ALLOY: "Alloy (Neutral)",
	Voice.ECHO: "Echo (Male)",
	Voice.FABLE: "Fable (Expressive)",
	Voice.ONYX: "Onyx (Deep Male)",
	Voice.NOVA: "Nova (Female)",
	Voice.SHIMMER: "Shimmer (Warm Female)",
}

# Listening playback speeds offered to the learner
SPEED_OPTIONS: List[float] = [0.5, 0.75, 1.0, 1.25, 1.5]


# ============================================================================
# LANGUAGES AND TRADITIONS
# ============================================================================

class Language(BaseModel):
	model_config = ConfigDict(frozen=True)

	code: str
	name: str


DEFAULT_LANGUAGES: List[Language] = [
	Language(code="pt-BR", name="Brazilian Portuguese"),
	Language(code="zh", name="Chinese"),
	Language(code="en", name="English"),
	Language(code="fr", name="French"),
	Language(code="ru", name="Russian"),
	Language(code="es", name="Spanish"),
]

DEFAULT_TRADITIONS: List[str] = [
	"Anglican",
	"Baptist",
	"Catholic",
	"Lutheran",
	"Methodist",
	"Non-denominational",
	"Orthodox",
	"Pentecostal",
	"Presbyterian",
	"Protestant",
]


def resolve_language(code: str) -> Language:
	"""Look up a language by code; unknown codes keep the code as their name."""
	for lang in DEFAULT_LANGUAGES:
		if lang.code.lower() == code.lower():
			return lang
	return Language(code=code, name=code)


# ============================================================================
# PRACTICE ITEMS
# ============================================================================

def _new_id() -> str:
	return uuid.uuid4().hex


class SpeakingItem(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str = Field(default_factory=_new_id)
	text: str
	translation: Optional[str] = None
	difficulty: PracticeDifficulty

	@property
	def reference_text(self) -> str:
		return self.text


class ListeningItem(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str = Field(default_factory=_new_id)
	prayer_text: str
	question: str
	answers: List[str]
	correct_answer_index: int
	difficulty: PracticeDifficulty

	@property
	def reference_text(self) -> str:
		return self.prayer_text


PracticeItem = Union[SpeakingItem, ListeningItem]


# ============================================================================
# RESULTS
# ============================================================================

class PronunciationFeedback(BaseModel):
	model_config = ConfigDict(frozen=True)

	score: int = Field(ge=0, le=100)
	accuracy: AccuracyTier
	feedback: str
	improvements: List[str] = Field(default_factory=list)
	tips: str = ""


# Numeric timestamps from earlier history documents count seconds from 2001-01-01 UTC
_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class PracticeResult(BaseModel):
	model_config = ConfigDict(frozen=True, populate_by_name=True)

	item_text: str = Field(validation_alias=AliasChoices("item_text", "phraseText", "prayerText"))
	score: int = Field(ge=0, le=100)
	difficulty: PracticeDifficulty
	timestamp: datetime = Field(default_factory=_utcnow)
	is_correct: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_correct", "isCorrect"))

	@model_validator(mode="before")
	@classmethod
	def _upgrade_legacy(cls, data: Any) -> Any:
		if not isinstance(data, dict):
			return data
		data = dict(data)
		stamp = data.get("timestamp")
		if isinstance(stamp, (int, float)) and not isinstance(stamp, bool):
			data["timestamp"] = _REFERENCE_DATE + timedelta(seconds=float(stamp))
		# Legacy listening entries only stored correctness
		if "score" not in data:
			correct = data.get("is_correct", data.get("isCorrect"))
			if isinstance(correct, bool):
				data["score"] = 100 if correct else 0
		return data


class CapturedAudio(BaseModel):
	model_config = ConfigDict(frozen=True)

	path: str
	data: bytes


# ============================================================================
# SESSION SNAPSHOT
# ============================================================================

class SessionState(BaseModel):
	"""Immutable view of a practice session, emitted after every transition."""

	model_config = ConfigDict(frozen=True)

	mode: PracticeMode
	phase: SessionPhase = SessionPhase.LOADING_CONTENT
	language: str
	tradition: str
	difficulty: PracticeDifficulty
	index: int = 0
	total: int = 0
	item: Optional[Union[SpeakingItem, ListeningItem]] = None
	audio_state: AudioState = AudioState.IDLE
	feedback: Optional[PronunciationFeedback] = None
	transcript: str = ""
	error: Optional[str] = None
	selected_answer: Optional[int] = None
	is_correct: Optional[bool] = None
	attempt: int = 0
