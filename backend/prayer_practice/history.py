from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from .models import KeyValueEntry
from .schemas import PracticeMode, PracticeResult

logger = logging.getLogger(__name__)

HISTORY_VERSION = 1

NAMESPACES = {
	PracticeMode.SPEAKING: "speaking_practice_history",
	PracticeMode.LISTENING: "listening_practice_history",
}


def decode_history(raw: Optional[str]) -> List[PracticeResult]:
	"""Decode a stored history document.

	Accepts the versioned ``{"version": 1, "results": [...]}`` form and the
	unversioned bare array written by earlier releases.
	"""
	if not raw:
		return []
	try:
		data: Any = json.loads(raw)
	except (ValueError, RecursionError):
		logger.error("Stored practice history is not valid JSON; starting from an empty history")
		return []
	if isinstance(data, dict):
		version = data.get("version")
		if isinstance(version, int) and version > HISTORY_VERSION:
			logger.warning("Practice history version %s is newer than supported version %s", version, HISTORY_VERSION)
		entries = data.get("results") or []
	else:
		entries = data
	if not isinstance(entries, list):
		return []
	results: List[PracticeResult] = []
	for entry in entries:
		try:
			results.append(PracticeResult.model_validate(entry))
		except ValidationError as err:
			logger.warning("Skipping unreadable practice history entry: %s", err.errors()[:1])
	return results


def encode_history(results: List[PracticeResult]) -> str:
	return json.dumps(
		{
			"version": HISTORY_VERSION,
			"results": [r.model_dump(mode="json", exclude_none=True) for r in results],
		},
		ensure_ascii=False,
	)


class HistoryStore:
	"""Append-only log of practice attempts kept under one key-value namespace.

	Every append is committed before it becomes visible through ``results``
	and the aggregates.
	"""

	def __init__(self, session_factory: sessionmaker, namespace: str) -> None:
		self._session_factory = session_factory
		self.namespace = namespace
		self._results: List[PracticeResult] = []
		self.reload()

	@classmethod
	def for_mode(cls, session_factory: sessionmaker, mode: PracticeMode) -> "HistoryStore":
		return cls(session_factory, NAMESPACES[mode])

	def reload(self) -> None:
		with self._session_factory() as db:
			row = db.get(KeyValueEntry, self.namespace)
			raw = row.value if row is not None else None
		self._results = decode_history(raw)

	def append(self, result: PracticeResult) -> None:
		updated = self._results + [result]
		payload = encode_history(updated)
		with self._session_factory() as db:
			row = db.get(KeyValueEntry, self.namespace)
			if row is None:
				db.add(KeyValueEntry(namespace=self.namespace, value=payload))
			else:
				row.value = payload
			db.commit()
		self._results = updated

	@property
	def results(self) -> Tuple[PracticeResult, ...]:
		return tuple(self._results)

	@property
	def count(self) -> int:
		return len(self._results)

	def mean_score(self) -> int:
		"""Integer mean score, rounded down; 0 when nothing is recorded."""
		if not self._results:
			return 0
		return sum(r.score for r in self._results) // len(self._results)

	def correct_count(self) -> int:
		return sum(1 for r in self._results if r.is_correct)

	def accuracy(self) -> int:
		if not self._results:
			return 0
		return (self.correct_count() * 100) // len(self._results)
