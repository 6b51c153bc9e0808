from __future__ import annotations

import logging
import math
from typing import Any, List

from .errors import AIGatewayError
from .openai_client import AIGatewayClient
from .parsing import DecodeError, extract_json
from .schemas import AccuracyTier, Language, PronunciationFeedback

logger = logging.getLogger(__name__)

SCORING_TEMPERATURE = 0.3

# Returned whenever the grader cannot be reached or its output cannot be read
DEFAULT_FEEDBACK = PronunciationFeedback(
	score=70,
	accuracy=AccuracyTier.MEDIUM,
	feedback="Your pronunciation is improving!",
	improvements=[],
	tips="Keep practicing daily for best results.",
)

# Per-field defaults when the grader returns an object with gaps
_DEFAULT_SCORE = 70
_DEFAULT_FIELD_FEEDBACK = "Good effort!"
_FEEDBACK_FIELDS = ("score", "accuracy", "feedback", "improvements", "tips")


def build_scoring_prompt(language: Language) -> str:
	return f"""
You are a prayer pronunciation coach. Evaluate the user's spoken prayer against the original text.
Provide feedback in {language.name} language.

Rate accuracy from 0-100 and provide:
1. Overall score
2. Specific words that need improvement
3. Encouragement and tips

Respond in JSON format only:
{{
    "score": <number>,
    "accuracy": "<high/medium/low>",
    "feedback": "<encouraging feedback>",
    "improvements": ["<word1>", "<word2>"],
    "tips": "<pronunciation tips>"
}}
""".strip()


def tier_for_score(score: int) -> AccuracyTier:
	if score >= 85:
		return AccuracyTier.HIGH
	if score >= 60:
		return AccuracyTier.MEDIUM
	return AccuracyTier.LOW


def _coerce_score(value: Any) -> int:
	if isinstance(value, bool):
		return _DEFAULT_SCORE
	if isinstance(value, str):
		try:
			value = float(value.strip().rstrip("%"))
		except ValueError:
			return _DEFAULT_SCORE
	if isinstance(value, (int, float)):
		if isinstance(value, float) and not math.isfinite(value):
			return _DEFAULT_SCORE
		return max(0, min(100, int(round(value))))
	return _DEFAULT_SCORE


def decode_feedback(raw: str) -> PronunciationFeedback:
	"""Decode grader output into feedback; anything unreadable yields ``DEFAULT_FEEDBACK``."""
	try:
		data = extract_json(raw)
	except DecodeError:
		return DEFAULT_FEEDBACK
	if not isinstance(data, dict) or not any(key in data for key in _FEEDBACK_FIELDS):
		return DEFAULT_FEEDBACK

	score = _coerce_score(data.get("score", _DEFAULT_SCORE))
	accuracy_raw = str(data.get("accuracy") or "").strip().lower()
	if accuracy_raw in (AccuracyTier.HIGH.value, AccuracyTier.MEDIUM.value, AccuracyTier.LOW.value):
		accuracy = AccuracyTier(accuracy_raw)
	else:
		accuracy = tier_for_score(score)
	feedback = data.get("feedback")
	feedback = feedback.strip() if isinstance(feedback, str) and feedback.strip() else _DEFAULT_FIELD_FEEDBACK
	improvements_raw = data.get("improvements")
	improvements: List[str] = []
	if isinstance(improvements_raw, list):
		improvements = [str(w).strip() for w in improvements_raw if str(w).strip()]
	tips = data.get("tips")
	tips = tips.strip() if isinstance(tips, str) else ""
	return PronunciationFeedback(
		score=score,
		accuracy=accuracy,
		feedback=feedback,
		improvements=improvements,
		tips=tips,
	)


class ScoringEvaluator:
	def __init__(self, client: AIGatewayClient) -> None:
		self.client = client

	async def evaluate(self, reference_text: str, transcript: str, language: Language) -> PronunciationFeedback:
		user_message = f'Original prayer text: "{reference_text}"\nUser spoke: "{transcript}"'
		try:
			raw = await self.client.generate_text(
				build_scoring_prompt(language),
				user_message,
				temperature=SCORING_TEMPERATURE,
			)
		except AIGatewayError as err:
			logger.warning("Pronunciation scoring unavailable (%s): %s", err.kind.value, err.detail)
			return DEFAULT_FEEDBACK
		return decode_feedback(raw)
