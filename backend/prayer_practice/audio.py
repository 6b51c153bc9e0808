"""
Audio pipeline.

Owns the microphone and speaker. Only one audio operation runs at a time:
starting a capture stops any playback, and starting a playback stops (and
discards) any capture. Playback of synthesized speech degrades to on-device
speech of the literal text, so a play request always produces sound.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .errors import AIGatewayError, DeviceUnavailable
from .openai_client import AIGatewayClient
from .schemas import AudioState, CapturedAudio
from .settings import settings

logger = logging.getLogger(__name__)
logging.getLogger("comtypes").setLevel(logging.ERROR)


class PlaybackSource(str, Enum):
	SYNTHESIZED = "synthesized"
	DEVICE_SPEECH = "device_speech"
	RECORDING = "recording"


# ============================================================================
# DEVICES
# ============================================================================

class AudioDevice:
	"""Blocking device primitives driven by ``AudioPipeline``.

	``play_file`` and ``speak`` block until playback ends or
	``stop_playback`` is called from another thread.
	"""

	def start_capture(self, path: Path) -> None:
		raise NotImplementedError

	def stop_capture(self) -> bytes:
		raise NotImplementedError

	def play_file(self, path: Path, speed: float = 1.0) -> None:
		raise NotImplementedError

	def speak(self, text: str, rate: float = 1.0) -> None:
		raise NotImplementedError

	def stop_playback(self) -> None:
		raise NotImplementedError


def _sounddevice() -> Any:
	# PortAudio is loaded at import time; a missing library means no usable device
	try:
		import sounddevice
	except OSError as err:
		raise DeviceUnavailable(f"Audio device unavailable: {err}") from err
	return sounddevice


class SoundDeviceBackend(AudioDevice):
	"""Microphone and speaker through sounddevice/soundfile, speech through pyttsx3."""

	def __init__(self, sample_rate: Optional[int] = None, *, speech_words_per_minute: int = 150) -> None:
		self.sample_rate = sample_rate or settings.sample_rate
		self.speech_words_per_minute = speech_words_per_minute
		self._stream = None
		self._sink = None
		self._capture_path: Optional[Path] = None
		self._tts_engine = None

	def start_capture(self, path: Path) -> None:
		sd = _sounddevice()
		import soundfile as sf

		path.parent.mkdir(parents=True, exist_ok=True)
		try:
			sink = sf.SoundFile(str(path), mode="w", samplerate=self.sample_rate, channels=1, subtype="PCM_16")
		except (RuntimeError, OSError) as err:
			raise DeviceUnavailable(f"Failed to open capture file: {err}") from err

		def _callback(indata, frames, time_info, status) -> None:
			if status:
				logger.debug("Capture status: %s", status)
			sink.write(indata.copy())

		try:
			stream = sd.InputStream(samplerate=self.sample_rate, channels=1, dtype="float32", callback=_callback)
			stream.start()
		except (sd.PortAudioError, OSError) as err:
			sink.close()
			raise DeviceUnavailable(f"Failed to start recording: {err}") from err
		self._stream = stream
		self._sink = sink
		self._capture_path = path

	def stop_capture(self) -> bytes:
		if self._stream is not None:
			self._stream.stop()
			self._stream.close()
			self._stream = None
		if self._sink is not None:
			self._sink.close()
			self._sink = None
		path, self._capture_path = self._capture_path, None
		if path is None or not path.exists():
			return b""
		return path.read_bytes()

	def play_file(self, path: Path, speed: float = 1.0) -> None:
		sd = _sounddevice()
		import soundfile as sf

		try:
			data, rate = sf.read(str(path), dtype="float32")
		except (RuntimeError, OSError) as err:
			raise DeviceUnavailable(f"Could not decode audio file {path.name}: {err}") from err
		try:
			sd.play(data, samplerate=int(rate * speed))
			sd.wait()
		except sd.PortAudioError as err:
			raise DeviceUnavailable(f"Audio playback failed: {err}") from err

	def speak(self, text: str, rate: float = 1.0) -> None:
		import pyttsx3

		try:
			engine = pyttsx3.init()
		except (RuntimeError, OSError) as err:
			raise DeviceUnavailable(f"On-device speech unavailable: {err}") from err
		engine.setProperty("rate", int(self.speech_words_per_minute * rate))
		self._tts_engine = engine
		try:
			engine.say(text)
			engine.runAndWait()
		finally:
			self._tts_engine = None

	def stop_playback(self) -> None:
		engine = self._tts_engine
		if engine is not None:
			engine.stop()
		try:
			sd = _sounddevice()
		except DeviceUnavailable:
			return
		sd.stop()


# ============================================================================
# PIPELINE
# ============================================================================

class AudioPipeline:
	"""Serializes capture and playback on one device.

	Operations may name an ``owner`` (a practice session). When one owner's
	operation stops another owner's capture or playback, the displaced owner's
	registered callback receives the state it lost. ``release`` only stops
	audio the caller still owns.
	"""

	def __init__(self, device: AudioDevice, client: AIGatewayClient, *, capture_dir: Optional[str] = None) -> None:
		self.device = device
		self.client = client
		self.capture_dir = Path(capture_dir or settings.audio_dir)
		self.state = AudioState.IDLE
		self.owner: Optional[str] = None
		# Incremented for every capture that actually started
		self.capture_id = 0
		self.last_capture: Optional[CapturedAudio] = None
		self._capture_path: Optional[Path] = None
		self._playback_id = 0
		self._playback_task: Optional[asyncio.Task] = None
		self._listeners: Dict[str, Callable[[AudioState], None]] = {}

	def register(self, owner: str, on_preempted: Callable[[AudioState], None]) -> None:
		self._listeners[owner] = on_preempted

	def owns(self, owner: str) -> bool:
		return self.state != AudioState.IDLE and self.owner == owner

	# ---- capture -------------------------------------------------------------

	async def start_capture(self, session_key: str, *, owner: Optional[str] = None) -> int:
		await self._stop_active(owner)
		path = self.capture_dir / f"{session_key}.wav"
		# DeviceUnavailable propagates with the pipeline still idle
		self.device.start_capture(path)
		self.capture_id += 1
		self._capture_path = path
		self.state = AudioState.RECORDING
		self.owner = owner
		return self.capture_id

	async def stop_capture(self, *, owner: Optional[str] = None) -> Optional[CapturedAudio]:
		if self.state != AudioState.RECORDING or (owner is not None and self.owner != owner):
			return None
		try:
			data = self.device.stop_capture()
		finally:
			self._set_idle()
		captured = CapturedAudio(path=str(self._capture_path), data=data)
		self.last_capture = captured
		return captured

	# ---- playback ------------------------------------------------------------

	async def play_text(
		self,
		text: str,
		*,
		voice: str = "nova",
		speed: float = 1.0,
		filename: str = "phrase_audio.mp3",
		owner: Optional[str] = None,
	) -> PlaybackSource:
		await self._stop_active(owner)
		playback_id = self._begin_playback(owner)
		path: Optional[Path] = None
		try:
			data = await self.client.synthesize_speech(text, voice=voice, speed=speed)
			path = self.client.save_audio(data, filename)
		except AIGatewayError as err:
			logger.warning("Speech synthesis failed (%s): %s; speaking on device", err.kind.value, err.detail)
		except OSError as err:
			logger.warning("Could not store synthesized audio: %s; speaking on device", err)

		if playback_id != self._playback_id:
			# Superseded while synthesizing
			return PlaybackSource.SYNTHESIZED if path is not None else PlaybackSource.DEVICE_SPEECH
		if path is None:
			self._run_playback(playback_id, lambda: self.device.speak(text, speed))
			return PlaybackSource.DEVICE_SPEECH
		self._run_playback(playback_id, lambda: self._play_synthesized(path, text, speed))
		return PlaybackSource.SYNTHESIZED

	async def play_clip(self, path: str, *, owner: Optional[str] = None) -> PlaybackSource:
		await self._stop_active(owner)
		playback_id = self._begin_playback(owner)
		self._run_playback(playback_id, lambda: self.device.play_file(Path(path), 1.0))
		return PlaybackSource.RECORDING

	async def stop_playback(self, *, owner: Optional[str] = None) -> None:
		if self.state != AudioState.PLAYING or (owner is not None and self.owner != owner):
			return
		self._playback_id += 1
		self._set_idle()
		self.device.stop_playback()

	async def wait_until_idle(self) -> None:
		task = self._playback_task
		if task is not None and not task.done():
			await asyncio.shield(task)

	async def release(self, owner: str) -> None:
		"""Stop the capture or playback ``owner`` still holds; other owners' audio is left alone."""
		if self.owns(owner):
			await self._stop_active(owner)

	async def close(self) -> None:
		await self._stop_active(None)

	# ---- internals -----------------------------------------------------------

	def _set_idle(self) -> None:
		self.state = AudioState.IDLE
		self.owner = None

	def _begin_playback(self, owner: Optional[str]) -> int:
		self._playback_id += 1
		self.state = AudioState.PLAYING
		self.owner = owner
		return self._playback_id

	def _run_playback(self, playback_id: int, play: Callable[[], None]) -> None:
		self._playback_task = asyncio.create_task(self._playback(playback_id, play))

	async def _playback(self, playback_id: int, play: Callable[[], None]) -> None:
		try:
			await asyncio.to_thread(play)
		except DeviceUnavailable as err:
			logger.warning("Playback failed: %s", err.detail)
		finally:
			if playback_id == self._playback_id and self.state == AudioState.PLAYING:
				self._set_idle()

	def _play_synthesized(self, path: Path, text: str, rate: float) -> None:
		try:
			self.device.play_file(path, 1.0)
		except DeviceUnavailable as err:
			logger.warning("Could not play synthesized audio (%s); speaking on device", err.detail)
			self.device.speak(text, rate)

	async def _stop_active(self, requester: Optional[str]) -> None:
		displaced, lost = self.owner, self.state
		if lost == AudioState.RECORDING:
			logger.info("Discarding active capture before starting another audio operation")
			try:
				self.device.stop_capture()
			finally:
				self._set_idle()
		elif lost == AudioState.PLAYING:
			await self.stop_playback()
		else:
			return
		if displaced is not None and displaced != requester:
			on_preempted = self._listeners.get(displaced)
			if on_preempted is not None:
				on_preempted(lost)
