from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from .schemas import ListeningItem, PracticeDifficulty, SpeakingItem


class DecodeError(ValueError):
	pass


def extract_json(text: str) -> Any:
	"""Pull a JSON value out of model output.

	Handles raw JSON, JSON wrapped in a markdown code block, and JSON
	embedded in surrounding prose (first array or object wins).
	"""
	text = (text or "").strip()
	try:
		return json.loads(text)
	except (ValueError, RecursionError):
		pass

	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			return json.loads(code_block.group(1))
		except (ValueError, RecursionError):
			pass

	# Try whichever bracket opens first so an object's inner array is not mistaken for the payload
	spans = []
	for opener, closer in (("[", "]"), ("{", "}")):
		first = text.find(opener)
		last = text.rfind(closer)
		if first != -1 and last > first:
			spans.append((first, last))
	for first, last in sorted(spans):
		try:
			return json.loads(text[first : last + 1])
		except (ValueError, RecursionError):
			continue

	raise DecodeError("Model output did not contain valid JSON")


def _entries(data: Any, *keys: str) -> List[Dict[str, Any]]:
	if isinstance(data, dict):
		for key in keys:
			if isinstance(data.get(key), list):
				data = data[key]
				break
	if not isinstance(data, list):
		raise DecodeError("Expected a JSON array of items")
	return [entry for entry in data if isinstance(entry, dict)]


def _text(value: Any) -> str:
	return value.strip() if isinstance(value, str) else ""


def decode_speaking_items(raw: str, difficulty: PracticeDifficulty) -> List[SpeakingItem]:
	items: List[SpeakingItem] = []
	for entry in _entries(extract_json(raw), "phrases", "items"):
		text = _text(entry.get("text"))
		if not text:
			continue
		translation = _text(entry.get("translation")) or None
		items.append(SpeakingItem(text=text, translation=translation, difficulty=difficulty))
	return items


def decode_listening_items(raw: str, difficulty: PracticeDifficulty) -> List[ListeningItem]:
	items: List[ListeningItem] = []
	for entry in _entries(extract_json(raw), "exercises", "items"):
		prayer_text = _text(entry.get("prayerText") or entry.get("prayer_text"))
		question = _text(entry.get("question"))
		answers = entry.get("answers") or entry.get("options")
		correct = entry.get("correctIndex", entry.get("correct_index"))
		if not prayer_text or not question or not isinstance(answers, list):
			continue
		answers = [str(a).strip() for a in answers if str(a).strip()]
		# bool is an int subclass; reject it explicitly
		if len(answers) < 2 or not isinstance(correct, int) or isinstance(correct, bool):
			continue
		if correct < 0 or correct >= len(answers):
			continue
		items.append(
			ListeningItem(
				prayer_text=prayer_text,
				question=question,
				answers=answers,
				correct_answer_index=correct,
				difficulty=difficulty,
			)
		)
	return items
