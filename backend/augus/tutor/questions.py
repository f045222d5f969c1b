from __future__ import annotations
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

MAX_QUESTIONS = 5
MIN_KEYWORDS = 2
MAX_KEYWORDS = 5


@dataclass(frozen=True)
class QuizQuestion:
	text: str
	keywords: Tuple[str, ...] = field(default_factory=tuple)

	def to_dict(self) -> Dict[str, Any]:
		return {"q": self.text, "keywords": list(self.keywords)}


class MalformedQuizPayload(ValueError):
	pass


def _load_json(raw: str) -> Any:
	text = (raw or "").strip()
	# Models like to wrap JSON in markdown fences
	fenced = re.match(r"^```(?:json)?\s*([\s\S]*?)\s*```$", text)
	if fenced:
		text = fenced.group(1)
	try:
		return json.loads(text)
	except ValueError:
		pass
	match = re.search(r"\{[\s\S]*\}", text)
	if match:
		try:
			return json.loads(match.group(0))
		except ValueError:
			pass
	raise MalformedQuizPayload("quiz payload is not JSON")


def question_from_item(item: Any) -> QuizQuestion | None:
	if not isinstance(item, dict):
		return None
	text = str(item.get("q") or item.get("question") or "").strip()
	if not text:
		return None
	raw_keywords = item.get("keywords")
	if not isinstance(raw_keywords, list):
		return None
	keywords: List[str] = []
	for kw in raw_keywords:
		kw = str(kw).strip()
		if kw and kw.lower() not in (k.lower() for k in keywords):
			keywords.append(kw)
	if len(keywords) < MIN_KEYWORDS:
		return None
	return QuizQuestion(text=text, keywords=tuple(keywords[:MAX_KEYWORDS]))


def parse_questions(raw: str) -> List[QuizQuestion]:
	"""Parse ``{"questions": [{"q": ..., "keywords": [...]}, ...]}``.

	Invalid items are skipped. Raises MalformedQuizPayload when the payload is
	not JSON or yields no valid question.
	"""
	data = _load_json(raw)
	items = data.get("questions") if isinstance(data, dict) else data
	if not isinstance(items, list):
		raise MalformedQuizPayload("quiz payload has no questions list")
	questions = [q for q in (question_from_item(item) for item in items) if q is not None]
	if not questions:
		raise MalformedQuizPayload("quiz payload has no valid questions")
	return questions[:MAX_QUESTIONS]
