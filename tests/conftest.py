from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from prayer_practice.audio import AudioDevice, AudioPipeline
from prayer_practice.content import ContentGenerator
from prayer_practice.db import init_db, make_engine, make_session_factory
from prayer_practice.errors import DeviceUnavailable
from prayer_practice.history import HistoryStore
from prayer_practice.schemas import PracticeMode
from prayer_practice.scoring import ScoringEvaluator


class FakeGateway:
	"""Stands in for AIGatewayClient; each capability returns a canned value or raises."""

	def __init__(self, tmp_dir: Path) -> None:
		self.audio_dir = tmp_dir
		self.text_responses: List[Any] = []
		self.transcript: Any = "Lord, hear my prayer"
		self.speech: Any = b"ID3fake-mp3"
		self.transcribe_gate: Optional[asyncio.Event] = None
		self.text_calls: List[Dict[str, Any]] = []
		self.transcribe_calls: List[Dict[str, Any]] = []
		self.speech_calls: List[Dict[str, Any]] = []
		self.configured = True
		self.closed = False

	async def generate_text(self, system_prompt: str, user_message: str, *, temperature: float = 0.7, max_tokens: int = 1024) -> str:
		self.text_calls.append({"system": system_prompt, "user": user_message, "temperature": temperature})
		response = self.text_responses.pop(0) if self.text_responses else "not json"
		if isinstance(response, BaseException):
			raise response
		return response

	async def transcribe_audio(self, audio: bytes, language_hint: Optional[str] = None, *, filename: str = "audio.wav") -> str:
		self.transcribe_calls.append({"audio": audio, "language": language_hint, "filename": filename})
		if self.transcribe_gate is not None:
			await self.transcribe_gate.wait()
		if isinstance(self.transcript, BaseException):
			raise self.transcript
		return self.transcript

	async def synthesize_speech(self, text: str, *, voice: str = "nova", speed: float = 1.0) -> bytes:
		self.speech_calls.append({"text": text, "voice": voice, "speed": speed})
		if isinstance(self.speech, BaseException):
			raise self.speech
		return self.speech

	def save_audio(self, data: bytes, filename: str = "tts_output.mp3") -> Path:
		path = self.audio_dir / filename
		path.write_bytes(data)
		return path

	async def aclose(self) -> None:
		self.closed = True


class FakeDevice(AudioDevice):
	def __init__(self) -> None:
		self.fail_capture = False
		self.captured_bytes = b"RIFF....WAVEfmt "
		self.capture_starts: List[Path] = []
		self.capture_stops = 0
		self.active_captures = 0
		self.played: List[Path] = []
		self.spoken: List[str] = []
		self.stops = 0
		# When set, playback blocks until stop_playback() or release()
		self.hold = False
		self._released = threading.Event()

	def start_capture(self, path: Path) -> None:
		if self.fail_capture:
			raise DeviceUnavailable("Microphone is busy")
		self.capture_starts.append(path)
		self.active_captures += 1

	def stop_capture(self) -> bytes:
		self.capture_stops += 1
		self.active_captures -= 1
		return self.captured_bytes

	def play_file(self, path: Path, speed: float = 1.0) -> None:
		self.played.append(path)
		self._block()

	def speak(self, text: str, rate: float = 1.0) -> None:
		self.spoken.append(text)
		self._block()

	def stop_playback(self) -> None:
		self.stops += 1
		self._released.set()

	def release(self) -> None:
		self._released.set()

	def _block(self) -> None:
		if self.hold:
			self._released.wait(timeout=5)


def speaking_json(count: int = 5) -> str:
	return json.dumps([{"text": f"Phrase number {i}", "translation": None} for i in range(count)])


def listening_json(correct_index: int = 2) -> str:
	return json.dumps(
		[
			{
				"prayerText": "Lord, watch over the sick and the lonely tonight.",
				"question": "Who is the prayer for?",
				"answers": ["Children", "Leaders", "The sick and lonely", "Travelers"],
				"correctIndex": correct_index,
			},
			{
				"prayerText": "Father, thank you for the harvest and the rain.",
				"question": "What is the speaker thankful for?",
				"answers": ["Harvest and rain", "Health", "Friends", "Work"],
				"correctIndex": 0,
			},
		]
	)


def feedback_json(score: Any = 90, accuracy: str = "high") -> str:
	return json.dumps(
		{
			"score": score,
			"accuracy": accuracy,
			"feedback": "Beautifully spoken.",
			"improvements": ["hear"],
			"tips": "Slow down slightly.",
		}
	)


@pytest.fixture
def gateway(tmp_path: Path) -> FakeGateway:
	return FakeGateway(tmp_path)


@pytest.fixture
def device() -> FakeDevice:
	fake = FakeDevice()
	yield fake
	fake.release()


@pytest.fixture
def db_engine(tmp_path: Path):
	bind = make_engine(f"sqlite:///{tmp_path / 'practice.db'}")
	init_db(bind)
	yield bind
	bind.dispose()


@pytest.fixture
def session_factory(db_engine):
	return make_session_factory(db_engine)


@pytest.fixture
def speaking_history(session_factory) -> HistoryStore:
	return HistoryStore.for_mode(session_factory, PracticeMode.SPEAKING)


@pytest.fixture
def listening_history(session_factory) -> HistoryStore:
	return HistoryStore.for_mode(session_factory, PracticeMode.LISTENING)


@pytest.fixture
def pipeline(device: FakeDevice, gateway: FakeGateway, tmp_path: Path) -> AudioPipeline:
	return AudioPipeline(device, gateway, capture_dir=str(tmp_path / "captures"))


@pytest.fixture
def content(gateway: FakeGateway) -> ContentGenerator:
	return ContentGenerator(gateway)


@pytest.fixture
def scorer(gateway: FakeGateway) -> ScoringEvaluator:
	return ScoringEvaluator(gateway)
