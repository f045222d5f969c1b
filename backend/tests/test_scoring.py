import pytest

from augus.tutor.questions import MalformedQuizPayload, QuizQuestion, parse_questions
from augus.tutor.scoring import (
	best_chunk,
	chunk_text,
	fallback_questions,
	keyword_score,
	local_feedback,
	local_hint,
	top_terms,
)

from .fakes import SAMPLE_DOCUMENT


def test_keyword_score_counts_case_insensitive_substrings():
	result = keyword_score("Mitosis splits the chromosomes", ["mitosis", "cytokinesis"])
	assert result.score == 50
	assert result.matched == ("mitosis",)
	assert result.missing == ("cytokinesis",)


@pytest.mark.parametrize(
	"answer,keywords,expected",
	[
		("", ["a1", "b2"], 0),
		("light and glucose", ["photosynthesis", "glucose", "light"], 67),
		("nothing relevant", [], 0),
		("one", ["one", "two", "three", "four", "five", "six", "seven", "eight"], 13),
	],
)
def test_keyword_score_rounds_half_up(answer, keywords, expected):
	assert keyword_score(answer, keywords).score == expected


def test_local_feedback_lists_missing_concepts():
	text = local_feedback(keyword_score("mitosis", ["mitosis", "cytokinesis"]))
	assert "50%" in text
	assert "cytokinesis" in text


def test_top_terms_skip_stopwords_and_prefer_frequency():
	terms = top_terms(SAMPLE_DOCUMENT, 3)
	assert terms[0] == "mitosis"
	assert "the" not in terms
	assert len(terms) == 3


def test_fallback_questions_have_text_and_keywords():
	questions = fallback_questions(SAMPLE_DOCUMENT)
	assert 1 <= len(questions) <= 5
	for q in questions:
		assert q.text
		assert 2 <= len(q.keywords) <= 5
		assert q.keywords[0] in q.text


def test_fallback_questions_empty_document():
	assert fallback_questions("   ") == []


def test_best_chunk_is_deterministic():
	doc = SAMPLE_DOCUMENT * 3
	first = best_chunk(doc, "how does photosynthesis make glucose", size=120)
	assert "photosynthesis" in first.lower() or "glucose" in first.lower()
	assert all(best_chunk(doc, "how does photosynthesis make glucose", size=120) == first for _ in range(5))


def test_best_chunk_ties_go_to_earliest_chunk():
	doc = "alpha beta gamma. " * 2 + "x" * 10
	chunks = chunk_text(doc, size=18)
	assert chunks[0] == chunks[1]
	assert best_chunk(doc, "beta", size=18) == chunks[0]
	# No overlap at all still returns the first chunk
	assert best_chunk("zzz qqq " * 50, "unrelated", size=40) == chunk_text("zzz qqq " * 50, 40)[0]


def test_best_chunk_empty_document():
	assert best_chunk("", "anything") == ""


def test_local_hint_mentions_keywords_and_excerpt():
	q = QuizQuestion("What does cytokinesis do?", ("cytokinesis", "cytoplasm"))
	hint = local_hint(SAMPLE_DOCUMENT, q)
	assert "cytokinesis, cytoplasm" in hint
	assert "document" in hint


def test_parse_questions_accepts_fenced_json_and_drops_bad_items():
	raw = """```json
	{"questions": [
		{"q": "Explain mitosis", "keywords": ["mitosis", "chromosomes"]},
		{"q": "", "keywords": ["x", "y"]},
		{"q": "Too few keywords", "keywords": ["one"]},
		{"q": "Many keywords", "keywords": ["a", "b", "c", "d", "e", "f", "g"]}
	]}
	```"""
	questions = parse_questions(raw)
	assert [q.text for q in questions] == ["Explain mitosis", "Many keywords"]
	assert len(questions[1].keywords) == 5


def test_parse_questions_caps_at_five():
	items = ",".join('{"q": "Q%d", "keywords": ["a", "b"]}' % i for i in range(8))
	assert len(parse_questions('{"questions": [%s]}' % items)) == 5


@pytest.mark.parametrize("raw", ["not json at all", '{"questions": []}', '{"items": 3}', ""])
def test_parse_questions_rejects_unusable_payloads(raw):
	with pytest.raises(MalformedQuizPayload):
		parse_questions(raw)


def test_fallback_questions_skip_terms_without_a_second_keyword():
	assert fallback_questions("Photosynthesis. Photosynthesis!") == []
	for q in fallback_questions("Photosynthesis. Chlorophyll!"):
		assert 2 <= len(q.keywords) <= 5
