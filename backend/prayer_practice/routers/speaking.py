"""
Speaking Practice Router
========================

Drives the speaking session: the learner listens to a prayer phrase,
records themselves, and receives a pronunciation score.

API Endpoints:
- POST /speaking/start: configure language/tradition/difficulty and load phrases
- POST /speaking/play: play the current phrase
- POST /speaking/record/start, /speaking/record/stop: capture and evaluate an attempt
- POST /speaking/record/replay: play back the last capture
- POST /speaking/next, /speaking/previous: move between phrases
- GET /speaking/state, /speaking/stats, /speaking/events
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..engine import SpeakingSession
from ..errors import DeviceUnavailable
from ..schemas import SessionState
from .common import StartRequest, device_unavailable, event_stream, get_speaking_session, start_session

router = APIRouter(prefix="/speaking", tags=["speaking"])


@router.post("/start", response_model=SessionState)
async def start(req: StartRequest, session: SpeakingSession = Depends(get_speaking_session)):
	"""Load a fresh set of phrases. Always succeeds, using built-in phrases when generation fails."""
	return await start_session(session, req)


@router.get("/state", response_model=SessionState)
async def state(session: SpeakingSession = Depends(get_speaking_session)):
	return session.state


@router.post("/play", response_model=SessionState)
async def play(session: SpeakingSession = Depends(get_speaking_session)):
	return await session.play_current()


@router.post("/record/start", response_model=SessionState)
async def record_start(session: SpeakingSession = Depends(get_speaking_session)):
	"""Start recording an attempt.

	Raises:
		HTTPException: 503 when the microphone cannot be opened; the session stays usable.
	"""
	try:
		return await session.start_recording()
	except DeviceUnavailable as err:
		raise device_unavailable(err)


@router.post("/record/stop", response_model=SessionState)
async def record_stop(session: SpeakingSession = Depends(get_speaking_session)):
	"""Stop recording, transcribe and score the attempt."""
	try:
		return await session.stop_recording()
	except DeviceUnavailable as err:
		raise device_unavailable(err)


@router.post("/record/replay", response_model=SessionState)
async def record_replay(session: SpeakingSession = Depends(get_speaking_session)):
	return await session.replay_recording()


@router.post("/next", response_model=SessionState)
async def next_phrase(session: SpeakingSession = Depends(get_speaking_session)):
	return await session.next_item()


@router.post("/previous", response_model=SessionState)
async def previous_phrase(session: SpeakingSession = Depends(get_speaking_session)):
	return await session.previous_item()


@router.get("/stats")
async def stats(session: SpeakingSession = Depends(get_speaking_session)):
	return session.stats()


@router.get("/events")
async def events(request: Request, session: SpeakingSession = Depends(get_speaking_session)):
	return event_stream(session, request)
