"""
Practice content generation.

Asks the text-generation endpoint for prayer phrases (speaking) or listening
comprehension exercises, and falls back to the built-in banks whenever the
provider is unreachable or its answer cannot be decoded. ``generate`` never
raises: practice must never be blocked by content generation.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .errors import AIGatewayError
from .fallback_banks import fallback_listening_items, fallback_speaking_items
from .openai_client import AIGatewayClient
from .parsing import DecodeError, decode_listening_items, decode_speaking_items
from .schemas import Language, PracticeDifficulty, PracticeItem, PracticeMode

logger = logging.getLogger(__name__)

SPEAKING_PHRASE_COUNT = 5
LISTENING_EXERCISE_COUNT = 3

# Word-count band per difficulty, used in the generation prompt
LENGTH_BANDS: Dict[PracticeDifficulty, str] = {
	PracticeDifficulty.BEGINNER: "short, simple phrases (3-8 words)",
	PracticeDifficulty.INTERMEDIATE: "medium phrases (8-15 words)",
	PracticeDifficulty.ADVANCED: "complex prayers (15-25 words)",
}


def build_speaking_prompt(tradition: str, language: Language, difficulty: PracticeDifficulty, count: int = SPEAKING_PHRASE_COUNT) -> str:
	bands = "\n".join(f"For {level.value}: {band}" for level, band in LENGTH_BANDS.items())
	return f"""
Generate {count} prayer phrases for {tradition} tradition in {language.name}.
Difficulty level: {difficulty.value}

{bands}

Respond in JSON array format only, no markdown:
[
    {{"text": "<prayer phrase>", "translation": "<English translation if not English>"}},
    ...
]
""".strip()


def build_listening_prompt(tradition: str, language: Language, difficulty: PracticeDifficulty, count: int = LISTENING_EXERCISE_COUNT) -> str:
	return f"""
Generate {count} listening comprehension exercises for {tradition} prayer practice in {language.name}.
Difficulty: {difficulty.value}

For each exercise provide:
- A short prayer text (2-4 sentences)
- A comprehension question about the prayer
- 4 multiple choice answers (one correct)
- Index of correct answer (0-3)

Respond in JSON only, no markdown:
[
    {{
        "prayerText": "<prayer>",
        "question": "<question>",
        "answers": ["<a1>", "<a2>", "<a3>", "<a4>"],
        "correctIndex": <0-3>
    }}
]
""".strip()


class ContentGenerator:
	def __init__(self, client: AIGatewayClient) -> None:
		self.client = client

	async def generate(
		self,
		tradition: str,
		language: Language,
		difficulty: PracticeDifficulty,
		mode: PracticeMode,
	) -> List[PracticeItem]:
		if mode == PracticeMode.SPEAKING:
			prompt = build_speaking_prompt(tradition, language, difficulty)
			user_message = "Generate prayer phrases now."
		else:
			prompt = build_listening_prompt(tradition, language, difficulty)
			user_message = "Generate listening exercises now."

		items: Sequence[PracticeItem] = []
		try:
			raw = await self.client.generate_text(prompt, user_message, temperature=0.8)
			if mode == PracticeMode.SPEAKING:
				items = decode_speaking_items(raw, difficulty)
			else:
				items = decode_listening_items(raw, difficulty)
		except AIGatewayError as err:
			logger.warning("Content generation failed (%s): %s; using built-in %s content", err.kind.value, err.detail, mode.value)
		except DecodeError as err:
			logger.warning("Could not decode generated %s content: %s; using built-in content", mode.value, err)

		if items:
			return list(items)
		if mode == PracticeMode.SPEAKING:
			return list(fallback_speaking_items(language.code, difficulty))
		return list(fallback_listening_items(language.code, difficulty))
