"""
Error taxonomy for the practice engine.

Every error carries a machine-checkable ``kind`` and a human-readable
``detail``. Control flow branches on the type or the kind, never on the
message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
	MISSING_CREDENTIAL = "missing_credential"
	INVALID_ENDPOINT = "invalid_endpoint"
	TRANSPORT_FAILURE = "transport_failure"
	UNEXPECTED_RESPONSE = "unexpected_response"
	TRANSCRIPTION_FAILURE = "transcription_failure"
	SYNTHESIS_FAILURE = "synthesis_failure"
	EMPTY_AUDIO_PAYLOAD = "empty_audio_payload"
	MALFORMED_PAYLOAD = "malformed_payload"
	DEVICE_UNAVAILABLE = "device_unavailable"


class PracticeError(Exception):
	kind: ErrorKind
	default_detail: str = "Practice error"

	def __init__(self, detail: Optional[str] = None) -> None:
		self.detail = detail or self.default_detail
		super().__init__(self.detail)


class AIGatewayError(PracticeError):
	"""Raised by the AI gateway client. Consumers fall back, never surface it."""


class MissingCredential(AIGatewayError):
	kind = ErrorKind.MISSING_CREDENTIAL
	default_detail = "OpenAI API key is missing or invalid"


class InvalidEndpoint(AIGatewayError):
	kind = ErrorKind.INVALID_ENDPOINT
	default_detail = "Invalid API URL"


class TransportFailure(AIGatewayError):
	kind = ErrorKind.TRANSPORT_FAILURE
	default_detail = "Network error"

	def __init__(self, cause: Optional[BaseException] = None, detail: Optional[str] = None) -> None:
		self.cause = cause
		super().__init__(detail or (f"Network error: {cause}" if cause is not None else None))


class UnexpectedResponse(AIGatewayError):
	kind = ErrorKind.UNEXPECTED_RESPONSE
	default_detail = "Chat completion failed"

	def __init__(self, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
		self.status_code = status_code
		if detail is None and status_code is not None:
			detail = f"{self.default_detail} (HTTP {status_code})"
		super().__init__(detail)


class TranscriptionFailure(UnexpectedResponse):
	kind = ErrorKind.TRANSCRIPTION_FAILURE
	default_detail = "Audio transcription failed"


class SynthesisFailure(UnexpectedResponse):
	kind = ErrorKind.SYNTHESIS_FAILURE
	default_detail = "Text-to-speech generation failed"


class EmptyAudioPayload(AIGatewayError):
	kind = ErrorKind.EMPTY_AUDIO_PAYLOAD
	default_detail = "Audio data is invalid"


class MalformedPayload(AIGatewayError):
	kind = ErrorKind.MALFORMED_PAYLOAD
	default_detail = "Invalid response from OpenAI"


class DeviceUnavailable(PracticeError):
	kind = ErrorKind.DEVICE_UNAVAILABLE
	default_detail = "Microphone is unavailable. Check the audio device and try again."
