"""Built-in practice material used whenever generation is unavailable."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .schemas import ListeningItem, PracticeDifficulty, SpeakingItem

FALLBACK_LANGUAGE = "en"

# (text, translation)
_SPEAKING_BANKS: Dict[str, List[Tuple[str, Optional[str]]]] = {
	"en": [
		("Lord, hear my prayer", None),
		("Thank you for this day", None),
		("Guide my steps today", None),
		("Bless my family", None),
		("Grant me peace", None),
	],
	"es": [
		("Señor, escucha mi oración", "Lord, hear my prayer"),
		("Gracias por este día", "Thank you for this day"),
		("Guía mis pasos hoy", "Guide my steps today"),
	],
}

# (prayer text, question, answers, correct index)
_LISTENING_BANKS: Dict[str, List[Tuple[str, str, List[str], int]]] = {
	"en": [
		(
			"Heavenly Father, thank you for this beautiful day. Guide my steps and fill my heart with your peace.",
			"What is the prayer asking for?",
			["Wealth and success", "Guidance and peace", "Good health", "Forgiveness"],
			1,
		),
		(
			"Lord, I lift up my family to you today. Protect them from harm and surround them with your love.",
			"Who is the prayer for?",
			["Friends", "Family", "Neighbors", "Strangers"],
			1,
		),
	],
	"es": [
		(
			"Padre celestial, gracias por este hermoso día. Guía mis pasos y llena mi corazón con tu paz.",
			"¿Qué pide la oración?",
			["Riqueza y éxito", "Guía y paz", "Buena salud", "Perdón"],
			1,
		),
		(
			"Señor, hoy te presento a mi familia. Protégelos del mal y rodéalos con tu amor.",
			"¿Por quién es la oración?",
			["Amigos", "Familia", "Vecinos", "Desconocidos"],
			1,
		),
	],
}


def _bank_key(language_code: str, banks: Dict[str, list]) -> str:
	code = (language_code or "").strip()
	if code in banks:
		return code
	base = code.split("-")[0].lower()
	if base in banks:
		return base
	return FALLBACK_LANGUAGE


def fallback_speaking_items(language_code: str, difficulty: PracticeDifficulty) -> List[SpeakingItem]:
	bank = _SPEAKING_BANKS[_bank_key(language_code, _SPEAKING_BANKS)]
	return [SpeakingItem(text=text, translation=translation, difficulty=difficulty) for text, translation in bank]


def fallback_listening_items(language_code: str, difficulty: PracticeDifficulty) -> List[ListeningItem]:
	bank = _LISTENING_BANKS[_bank_key(language_code, _LISTENING_BANKS)]
	return [
		ListeningItem(
			prayer_text=text,
			question=question,
			answers=list(answers),
			correct_answer_index=correct,
			difficulty=difficulty,
		)
		for text, question, answers, correct in bank
	]
