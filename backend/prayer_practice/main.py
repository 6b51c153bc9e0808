from __future__ import annotations
import logging
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from .audio import AudioDevice, AudioPipeline, SoundDeviceBackend
from .content import ContentGenerator
from .db import engine as default_engine, init_db, make_session_factory
from .engine import ListeningSession, SpeakingSession
from .history import HistoryStore
from .openai_client import AIGatewayClient
from .schemas import DEFAULT_LANGUAGES, DEFAULT_TRADITIONS, SPEED_OPTIONS, PracticeDifficulty, PracticeMode, Voice
from .scoring import ScoringEvaluator
from .routers import listening, speaking

logger = logging.getLogger(__name__)


def create_app(
	*,
	client: Optional[AIGatewayClient] = None,
	device: Optional[AudioDevice] = None,
	db_engine: Optional[Engine] = None,
) -> FastAPI:
	app = FastAPI(title="Prayer Practice API")
	app.include_router(speaking.router)
	app.include_router(listening.router)

	# One client for the whole process, passed to every component that needs it
	gateway = client or AIGatewayClient()
	app.state.gateway = gateway

	@app.get("/info")
	def info():
		return {"status": "ok", "openai_configured": gateway.configured}

	@app.get("/catalog")
	def catalog():
		return {
			"languages": [lang.model_dump() for lang in DEFAULT_LANGUAGES],
			"traditions": DEFAULT_TRADITIONS,
			"voices": [{"id": v.value, "name": v.display_name} for v in Voice],
			"difficulties": [{"id": d.value, "name": d.display_name} for d in PracticeDifficulty],
			"speed_options": SPEED_OPTIONS,
		}

	@app.on_event("startup")
	async def startup_event():
		bind = db_engine or default_engine
		# Initialize DB schema before the history stores read their namespaces
		init_db(bind)
		session_factory = make_session_factory(bind)
		# Both sessions share the single audio pipeline, so audio stays exclusive across modes
		audio = AudioPipeline(device or SoundDeviceBackend(), gateway)
		content = ContentGenerator(gateway)
		app.state.audio = audio
		app.state.speaking = SpeakingSession(
			content,
			audio,
			HistoryStore.for_mode(session_factory, PracticeMode.SPEAKING),
			ScoringEvaluator(gateway),
			gateway,
		)
		app.state.listening = ListeningSession(
			content,
			audio,
			HistoryStore.for_mode(session_factory, PracticeMode.LISTENING),
		)
		logger.info("Practice sessions ready (openai configured: %s)", gateway.configured)

	@app.on_event("shutdown")
	async def shutdown_event():
		await app.state.speaking.close()
		await app.state.listening.close()
		await app.state.audio.close()
		await gateway.aclose()

	return app


app = create_app()
