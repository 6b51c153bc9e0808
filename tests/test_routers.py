from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from prayer_practice.main import create_app

from conftest import feedback_json, listening_json


@pytest.fixture
def api(gateway, device, db_engine):
	app = create_app(client=gateway, device=device, db_engine=db_engine)
	with TestClient(app) as client:
		yield client
	assert gateway.closed is True


def test_info_reports_configuration(api):
	r = api.get("/info")

	assert r.status_code == 200
	assert r.json() == {"status": "ok", "openai_configured": True}


def test_catalog_lists_choices(api):
	data = api.get("/catalog").json()

	assert [lang["code"] for lang in data["languages"]] == ["pt-BR", "zh", "en", "fr", "ru", "es"]
	assert "Catholic" in data["traditions"]
	assert {"id": "nova", "name": "Nova (Female)"} in data["voices"]
	assert [d["id"] for d in data["difficulties"]] == ["beginner", "intermediate", "advanced"]
	assert data["speed_options"] == [0.5, 0.75, 1.0, 1.25, 1.5]


def test_state_before_start_is_loading(api):
	data = api.get("/speaking/state").json()

	assert data["phase"] == "loading_content"
	assert data["total"] == 0


def test_start_falls_back_to_builtin_phrases(api):
	r = api.post(
		"/speaking/start",
		json={"language": "es", "tradition": "Catholic", "difficulty": "intermediate", "voice": "echo"},
	)

	assert r.status_code == 200
	data = r.json()
	assert data["phase"] == "ready"
	assert data["language"] == "es"
	assert data["total"] == 3
	assert data["item"]["text"] == "Señor, escucha mi oración"


def test_speaking_attempt_over_http(api, gateway):
	api.post("/speaking/start", json={"language": "en"})

	assert api.post("/speaking/record/start").json()["phase"] == "recording"
	gateway.text_responses.append(feedback_json(score=88))
	data = api.post("/speaking/record/stop").json()

	assert data["phase"] == "result_shown"
	assert data["feedback"]["score"] == 88
	assert data["transcript"] == "Lord, hear my prayer"
	assert api.get("/speaking/stats").json() == {"total_practiced": 1, "average_score": 88}

	data = api.post("/speaking/next").json()
	assert data["index"] == 1
	assert data["feedback"] is None


def test_microphone_failure_is_503(api, device):
	api.post("/speaking/start", json={})
	device.fail_capture = True

	r = api.post("/speaking/record/start")

	assert r.status_code == 503
	assert r.json()["detail"] == "Microphone is busy"
	assert api.get("/speaking/state").json()["phase"] == "ready"


def test_listening_answer_over_http(api, gateway):
	gateway.text_responses = [listening_json(correct_index=2)]
	api.post("/listening/start", json={"tradition": "Presbyterian"})

	data = api.post("/listening/answer", json={"choice_index": 2}).json()

	assert data["phase"] == "result_shown"
	assert data["is_correct"] is True
	assert api.get("/listening/stats").json() == {"total_practiced": 1, "average_score": 100, "correct": 1, "accuracy": 100}

	data = api.post("/listening/retry").json()
	assert data["phase"] == "answering"


def test_listening_rejects_bad_input(api):
	api.post("/listening/start", json={})

	assert api.post("/listening/answer", json={"choice_index": 9}).status_code == 400
	assert api.post("/listening/answer", json={}).status_code == 400
	assert api.post("/listening/select", json={}).status_code == 400
	assert api.post("/listening/select", json={"choice_index": -1}).status_code == 422
	assert api.post("/listening/play", json={"speed": 3.0}).status_code == 400


def test_listening_select_then_submit(api):
	api.post("/listening/start", json={})

	data = api.post("/listening/select", json={"choice_index": 1}).json()
	assert data["phase"] == "answering"
	assert data["selected_answer"] == 1

	data = api.post("/listening/answer", json={}).json()
	# Built-in exercises use index 1 as the answer key
	assert data["is_correct"] is True
