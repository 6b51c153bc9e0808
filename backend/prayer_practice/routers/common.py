from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from fastapi import HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..engine import ListeningSession, PracticeSessionEngine, SpeakingSession
from ..errors import DeviceUnavailable
from ..schemas import PracticeDifficulty, Voice


class StartRequest(BaseModel):
	"""Configure a session and load its exercises; omitted fields keep their current value."""
	language: Optional[str] = Field(default=None, description="Language code, e.g. en, es, pt-BR")
	tradition: Optional[str] = Field(default=None, description="Prayer tradition, e.g. Catholic")
	difficulty: Optional[PracticeDifficulty] = None
	voice: Optional[Voice] = None


def get_speaking_session(request: Request) -> SpeakingSession:
	return request.app.state.speaking


def get_listening_session(request: Request) -> ListeningSession:
	return request.app.state.listening


def device_unavailable(err: DeviceUnavailable) -> HTTPException:
	return HTTPException(status_code=503, detail=err.detail)


async def start_session(engine: PracticeSessionEngine, req: StartRequest):
	return await engine.load(
		language=req.language,
		tradition=req.tradition,
		difficulty=req.difficulty,
		voice=req.voice.value if req.voice else None,
	)


def event_stream(engine: PracticeSessionEngine, request: Request) -> StreamingResponse:
	"""Server-sent events carrying every session snapshot, starting with the current one."""
	queue = engine.subscribe()

	async def _events() -> AsyncIterator[str]:
		try:
			while not await request.is_disconnected():
				try:
					state = await asyncio.wait_for(queue.get(), timeout=15)
				except asyncio.TimeoutError:
					yield ": keep-alive\n\n"
					continue
				yield f"data: {state.model_dump_json()}\n\n"
		finally:
			engine.unsubscribe(queue)

	return StreamingResponse(_events(), media_type="text/event-stream")
