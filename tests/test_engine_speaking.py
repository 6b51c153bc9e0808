from __future__ import annotations

import asyncio

import pytest

from prayer_practice.engine import TRANSCRIPTION_FALLBACK_TEXT, SpeakingSession, transcription_language
from prayer_practice.errors import DeviceUnavailable, TranscriptionFailure
from prayer_practice.schemas import AccuracyTier, AudioState, PracticeDifficulty, SessionPhase

from conftest import feedback_json, speaking_json


async def wait_for_phase(session, phase, attempts: int = 200) -> None:
	for _ in range(attempts):
		if session.phase == phase:
			return
		await asyncio.sleep(0.01)
	raise AssertionError(f"session stayed in {session.phase}, expected {phase}")


@pytest.fixture
async def session(content, pipeline, speaking_history, scorer, gateway):
	gateway.text_responses = [speaking_json(5)]
	practice = SpeakingSession(content, pipeline, speaking_history, scorer, gateway, language="en", tradition="Catholic", voice="nova")
	await practice.load()
	yield practice
	await practice.close()


async def test_load_prepares_phrases(session):
	state = session.state

	assert state.phase == SessionPhase.READY
	assert state.total == 5
	assert state.index == 0
	assert state.item.text == "Phrase number 0"
	assert state.difficulty == PracticeDifficulty.BEGINNER


async def test_attempt_is_scored_and_logged_once(session, gateway, speaking_history):
	await session.start_recording()
	assert session.phase == SessionPhase.RECORDING
	gateway.text_responses.append(feedback_json(score=90))

	state = await session.stop_recording()

	assert state.phase == SessionPhase.RESULT_SHOWN
	assert state.transcript == "Lord, hear my prayer"
	assert state.feedback.score == 90
	assert gateway.transcribe_calls[0]["language"] == "en"
	assert gateway.transcribe_calls[0]["filename"] == "speaking_practice.wav"
	assert speaking_history.count == 1
	assert speaking_history.results[0].item_text == "Phrase number 0"
	assert speaking_history.results[0].score == 90

	# Stopping again does not evaluate or log a second time
	await session.stop_recording()
	assert speaking_history.count == 1


async def test_transcription_failure_shows_zero_score_without_logging(session, gateway, speaking_history):
	gateway.transcript = TranscriptionFailure(status_code=500)
	await session.start_recording()

	state = await session.stop_recording()

	assert state.phase == SessionPhase.RESULT_SHOWN
	assert state.transcript == TRANSCRIPTION_FALLBACK_TEXT
	assert state.feedback.score == 0
	assert state.feedback.accuracy == AccuracyTier.UNKNOWN
	assert speaking_history.count == 0
	# The grader is never consulted without a transcript
	assert len(gateway.text_calls) == 1


async def test_empty_capture_is_not_sent_for_transcription(session, gateway, device, speaking_history):
	device.captured_bytes = b""
	await session.start_recording()

	state = await session.stop_recording()

	assert state.transcript == TRANSCRIPTION_FALLBACK_TEXT
	assert gateway.transcribe_calls == []
	assert speaking_history.count == 0


async def test_unreadable_grade_still_logs_default_score(session, gateway, speaking_history):
	gateway.text_responses.append("not json at all")
	await session.start_recording()

	state = await session.stop_recording()

	assert state.feedback.score == 70
	assert speaking_history.results[0].score == 70


async def test_new_recording_discards_superseded_evaluation(session, gateway, speaking_history):
	gateway.transcribe_gate = asyncio.Event()
	await session.start_recording()
	stop_task = asyncio.create_task(session.stop_recording())
	await wait_for_phase(session, SessionPhase.EVALUATING)

	await session.start_recording()
	gateway.transcribe_gate.set()
	await stop_task

	assert session.phase == SessionPhase.RECORDING
	assert session.state.feedback is None
	assert speaking_history.count == 0


async def test_close_cancels_inflight_evaluation(session, gateway, speaking_history):
	gateway.transcribe_gate = asyncio.Event()
	await session.start_recording()
	stop_task = asyncio.create_task(session.stop_recording())
	await wait_for_phase(session, SessionPhase.EVALUATING)

	await session.close()
	await stop_task

	assert speaking_history.count == 0
	assert session.state.feedback is None


async def test_device_unavailable_keeps_session_usable(session, device):
	device.fail_capture = True

	with pytest.raises(DeviceUnavailable):
		await session.start_recording()

	assert session.phase == SessionPhase.READY
	assert session.state.error == "Microphone is busy"

	device.fail_capture = False
	await session.start_recording()
	assert session.phase == SessionPhase.RECORDING


async def test_navigation_is_bounded(session):
	state = await session.previous_item()
	assert state.index == 0

	for _ in range(6):
		state = await session.next_item()

	assert state.index == 4
	assert state.item.text == "Phrase number 4"


async def test_next_clears_previous_result(session, gateway):
	gateway.text_responses.append(feedback_json(score=55, accuracy="low"))
	await session.start_recording()
	await session.stop_recording()

	state = await session.next_item()

	assert state.phase == SessionPhase.READY
	assert state.feedback is None
	assert state.transcript == ""


async def test_beginner_playback_is_slowed(session, gateway, pipeline):
	state = await session.play_current()

	assert state.phase == SessionPhase.PLAYING
	assert gateway.speech_calls[0] == {"text": "Phrase number 0", "voice": "nova", "speed": 0.8}
	await wait_for_phase(session, SessionPhase.READY)
	assert pipeline.state == AudioState.IDLE


async def test_recording_interrupts_playback(session, device, pipeline):
	device.hold = True
	await session.play_current()

	await session.start_recording()
	await asyncio.wait_for(pipeline.wait_until_idle(), timeout=5)
	await asyncio.sleep(0.05)

	assert session.phase == SessionPhase.RECORDING
	assert pipeline.state == AudioState.RECORDING


async def test_replay_returns_to_result(session, gateway, device):
	gateway.text_responses.append(feedback_json(score=80))
	await session.start_recording()
	await session.stop_recording()

	state = await session.replay_recording()

	assert state.phase == SessionPhase.PLAYING
	await wait_for_phase(session, SessionPhase.RESULT_SHOWN)
	assert device.played[-1].name == "speaking_practice.wav"


async def test_subscribers_receive_snapshots(session, gateway):
	queue = session.subscribe()
	assert (await queue.get()).phase == SessionPhase.READY

	gateway.text_responses = [speaking_json(2)]
	await session.load(difficulty=PracticeDifficulty.ADVANCED)

	phases = [queue.get_nowait().phase, queue.get_nowait().phase]
	assert phases == [SessionPhase.LOADING_CONTENT, SessionPhase.READY]
	assert session.state.total == 2
	assert session.playback_speed == 1.0


async def test_stats_report_floor_mean(session, gateway):
	for score in (90, 75):
		gateway.text_responses.append(feedback_json(score=score))
		await session.start_recording()
		await session.stop_recording()

	assert session.stats() == {"total_practiced": 2, "average_score": 82}


@pytest.mark.parametrize("code, hint", [("pt-BR", "pt"), ("zh", "zh"), ("es", "es"), ("de", "en"), ("en", "en")])
def test_transcription_language_hint(code, hint):
	assert transcription_language(code) == hint


async def test_replaying_phrase_twice_keeps_result(session, gateway, device):
	gateway.text_responses.append(feedback_json(score=80))
	await session.start_recording()
	await session.stop_recording()
	device.hold = True

	await session.play_current()
	state = await session.play_current()
	assert state.phase == SessionPhase.PLAYING
	device.release()

	await wait_for_phase(session, SessionPhase.RESULT_SHOWN)
	assert session.state.feedback.score == 80
