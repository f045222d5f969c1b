"""
Local fallbacks used when the AI backend is unavailable.

- term extraction and keyword-derived quiz questions
- keyword-overlap answer scoring
- bag-of-words relevance ranking over fixed-size document chunks
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .questions import MAX_KEYWORDS, MAX_QUESTIONS, MIN_KEYWORDS, QuizQuestion


CHUNK_SIZE = 800
HINT_EXCERPT_CHARS = 300

STOPWORDS = frozenset(
	"""
	a about above after again against all also am an and any are as at be because been before being
	below between both but by can could did do does doing down during each either else even ever
	every few for from further had has have having he her here hers herself him himself his how however
	i if in into is it its itself just like made make many may me might more most much must my myself
	no nor not now of off often on once one only or other others our ours ourselves out over own
	per rather same shall she should since so some such than that the their theirs them themselves
	then there these they this those through thus to too under until up upon us use used using very
	was we were what when where whether which while who whom whose why will with within without would
	yet you your yours yourself yourselves
	also another around become becomes called each etc first however including known least less
	let many new next page part second several still take taken therefore three two way well
	""".split()
)

_TOKEN_RE = re.compile(r"[a-z0-9']+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def tokenize(text: str) -> List[str]:
	return [t.strip("'") for t in _TOKEN_RE.findall((text or "").lower()) if t.strip("'")]


def content_terms(text: str, min_len: int = 4) -> List[str]:
	return [t for t in tokenize(text) if len(t) >= min_len and t not in STOPWORDS and not t.isdigit()]


def top_terms(text: str, limit: int = MAX_QUESTIONS) -> List[str]:
	# Counter keeps first-seen order for equal counts
	return [term for term, _ in Counter(content_terms(text)).most_common(limit)]


def _related_terms(text: str, term: str, exclude: Iterable[str], limit: int) -> List[str]:
	skip = set(exclude) | {term}
	counts: Counter = Counter()
	for sentence in _SENTENCE_RE.split(text or ""):
		terms = content_terms(sentence)
		if term in terms:
			counts.update(t for t in terms if t not in skip)
	return [t for t, _ in counts.most_common(limit)]


def fallback_questions(text: str, limit: int = MAX_QUESTIONS) -> List[QuizQuestion]:
	terms = top_terms(text, limit)
	ranked = top_terms(text, limit + 4)
	questions: List[QuizQuestion] = []
	for term in terms:
		keywords = [term, *_related_terms(text, term, (), 2)]
		for extra in ranked:
			if len(keywords) >= MIN_KEYWORDS:
				break
			if extra not in keywords:
				keywords.append(extra)
		if len(keywords) < MIN_KEYWORDS:
			# Questions need at least two keywords
			continue
		questions.append(
			QuizQuestion(
				text=f'What does the document say about "{term}"? Explain it in your own words.',
				keywords=tuple(keywords[:MAX_KEYWORDS]),
			)
		)
	return questions


def _round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class KeywordScore:
	score: int
	matched: Tuple[str, ...]
	missing: Tuple[str, ...]


def keyword_score(answer: str, keywords: Sequence[str]) -> KeywordScore:
	"""Percentage of keywords present in the answer (case-insensitive substring)."""
	lowered = (answer or "").lower()
	matched = tuple(k for k in keywords if k and k.lower() in lowered)
	missing = tuple(k for k in keywords if k and k.lower() not in lowered)
	total = len(matched) + len(missing)
	score = _round_half_up(100 * len(matched) / total) if total else 0
	return KeywordScore(score=score, matched=matched, missing=missing)


def local_feedback(result: KeywordScore) -> str:
	lines = [f"- Score: {result.score}% of the key concepts covered."]
	if result.matched:
		lines.append(f"- Covered: {', '.join(result.matched)}.")
	if result.missing:
		lines.append(f"- Missing: {', '.join(result.missing)}.")
		lines.append(f"- Tip: revisit the part of the document about {result.missing[0]}.")
	else:
		lines.append("- Tip: great coverage, try adding an example next time.")
	return "\n".join(lines)


def chunk_text(text: str, size: int = CHUNK_SIZE) -> List[str]:
	text = text or ""
	chunks = [text[i:i + size].strip() for i in range(0, len(text), size)]
	return [c for c in chunks if c]


def cosine_similarity(a: Counter, b: Counter) -> float:
	if not a or not b:
		return 0.0
	dot = sum(count * b.get(term, 0) for term, count in a.items())
	if not dot:
		return 0.0
	norm = math.sqrt(sum(v * v for v in a.values())) * math.sqrt(sum(v * v for v in b.values()))
	return dot / norm


def best_chunk(document: str, query: str, size: int = CHUNK_SIZE) -> str:
	"""Most relevant chunk of ``document`` for ``query``; earliest chunk wins ties."""
	chunks = chunk_text(document, size)
	if not chunks:
		return ""
	query_vec = Counter(content_terms(query, min_len=2))
	best, best_score = chunks[0], -1.0
	for chunk in chunks:
		score = cosine_similarity(query_vec, Counter(content_terms(chunk, min_len=2)))
		if score > best_score:
			best, best_score = chunk, score
	return best


def _excerpt(text: str, limit: int) -> str:
	text = re.sub(r"\s+", " ", text or "").strip()
	if len(text) <= limit:
		return text
	return text[:limit].rsplit(" ", 1)[0] + "…"


def local_hint(document: str, question: QuizQuestion) -> str:
	query = " ".join([question.text, *question.keywords])
	excerpt = _excerpt(best_chunk(document, query), HINT_EXCERPT_CHARS)
	parts = [f"Hint: think about {', '.join(question.keywords)}."]
	if excerpt:
		parts.append(f"This part of the document may help: \"{excerpt}\"")
	return "\n".join(parts)


def local_answer(document: str, question: str) -> str:
	excerpt = _excerpt(best_chunk(document, question), CHUNK_SIZE)
	if not excerpt:
		return "I couldn't find anything about that in the document."
	return f"Here is the most relevant part of the document:\n{excerpt}"
