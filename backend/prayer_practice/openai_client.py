from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Type

import httpx

from .errors import (
	EmptyAudioPayload,
	InvalidEndpoint,
	MalformedPayload,
	MissingCredential,
	SynthesisFailure,
	TranscriptionFailure,
	TransportFailure,
	UnexpectedResponse,
)
from .settings import settings

logger = logging.getLogger(__name__)

_AUDIO_CONTENT_TYPES: Dict[str, str] = {
	".wav": "audio/wav",
	".m4a": "audio/m4a",
	".mp3": "audio/mpeg",
	".webm": "audio/webm",
	".ogg": "audio/ogg",
}


class AIGatewayClient:
	"""Access to the provider's text generation, transcription and speech endpoints.

	Every call either returns a typed payload or raises an ``AIGatewayError``.
	Nothing is retried here; callers fall back instead.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		timeout: Optional[float] = None,
		audio_dir: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.openai_api_key
		self.base_url = base_url or settings.openai_base_url
		self.chat_model = settings.openai_chat_model
		self.transcription_model = settings.openai_transcription_model
		self.tts_model = settings.openai_tts_model
		self.audio_dir = Path(audio_dir or settings.audio_dir)
		self._client = httpx.AsyncClient(
			timeout=timeout if timeout is not None else settings.openai_timeout_seconds,
			transport=transport,
		)

	@property
	def configured(self) -> bool:
		return bool(self.api_key)

	async def generate_text(
		self,
		system_prompt: str,
		user_message: str,
		*,
		temperature: float = 0.7,
		max_tokens: int = 1024,
	) -> str:
		payload: Dict[str, Any] = {
			"model": self.chat_model,
			"messages": [
				{"role": "system", "content": system_prompt},
				{"role": "user", "content": user_message},
			],
			"temperature": temperature,
			"max_tokens": max_tokens,
		}
		r = await self._post("/chat/completions", UnexpectedResponse, json=payload)
		try:
			data = r.json()
			content = data["choices"][0]["message"]["content"]
		except (ValueError, RecursionError, KeyError, IndexError, TypeError) as err:
			raise MalformedPayload(f"Unexpected chat completion body: {r.text[:200]}") from err
		if not isinstance(content, str):
			raise MalformedPayload("Chat completion content is not text")
		return content

	async def transcribe_audio(
		self,
		audio: bytes,
		language_hint: Optional[str] = None,
		*,
		filename: str = "audio.wav",
	) -> str:
		data: Dict[str, str] = {"model": self.transcription_model}
		# Hint only biases recognition; omit the field entirely when absent
		if language_hint:
			data["language"] = language_hint
		content_type = _AUDIO_CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")
		files = {"file": (filename, audio, content_type)}
		r = await self._post("/audio/transcriptions", TranscriptionFailure, data=data, files=files)
		try:
			text = r.json()["text"]
		except (ValueError, RecursionError, KeyError, TypeError) as err:
			raise MalformedPayload(f"Unexpected transcription body: {r.text[:200]}") from err
		if not isinstance(text, str):
			raise MalformedPayload("Transcription text is not a string")
		return text

	async def synthesize_speech(self, text: str, *, voice: str = "nova", speed: float = 1.0) -> bytes:
		payload: Dict[str, Any] = {
			"model": self.tts_model,
			"input": text,
			"voice": voice,
			"speed": speed,
		}
		r = await self._post("/audio/speech", SynthesisFailure, json=payload)
		if not r.content:
			raise EmptyAudioPayload()
		return r.content

	def save_audio(self, data: bytes, filename: str = "tts_output.mp3") -> Path:
		self.audio_dir.mkdir(parents=True, exist_ok=True)
		path = self.audio_dir / filename
		path.write_bytes(data)
		return path

	async def aclose(self) -> None:
		await self._client.aclose()

	def _endpoint(self, path: str) -> str:
		try:
			url = httpx.URL(f"{(self.base_url or '').rstrip('/')}{path}")
		except (httpx.InvalidURL, TypeError) as err:
			raise InvalidEndpoint(f"Invalid API URL: {self.base_url!r}") from err
		if url.scheme not in ("http", "https") or not url.host:
			raise InvalidEndpoint(f"Invalid API URL: {self.base_url!r}")
		return str(url)

	async def _post(self, path: str, failure: Type[UnexpectedResponse], **kwargs: Any) -> httpx.Response:
		# Credential check comes first so a missing key never reaches the network
		if not self.api_key:
			raise MissingCredential()
		url = self._endpoint(path)
		headers = {"Authorization": f"Bearer {self.api_key}"}
		try:
			r = await self._client.post(url, headers=headers, **kwargs)
		except httpx.RequestError as net_err:
			raise TransportFailure(net_err) from net_err
		if not r.is_success:
			logger.warning("%s returned HTTP %s", path, r.status_code)
			raise failure(status_code=r.status_code)
		return r
