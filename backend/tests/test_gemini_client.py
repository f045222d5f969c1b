import json

import httpx
import pytest

from augus.gemini_client import GeminiClient, GeminiError, GeminiNotConfigured, extract_text, resolve_candidates
from augus.tutor.ai import AIClientError, GeminiTutorAI, build_quiz_prompt, QUIZ_DOC_CHARS


def _ok(text):
	return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_resolve_candidates_orders_versions_then_models_without_duplicates():
	pairs = resolve_candidates("m1", ["m2", "m1", "m3"], ["v1", "v1beta"])
	assert pairs == [
		("v1", "m1"), ("v1", "m2"), ("v1", "m3"),
		("v1beta", "m1"), ("v1beta", "m2"), ("v1beta", "m3"),
	]


def test_extract_text_joins_parts_and_tolerates_garbage():
	data = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}, {}]}}]}
	assert extract_text(data) == "a b"
	assert extract_text({}) == ""
	assert extract_text({"candidates": []}) == ""


def test_missing_key_is_not_configured():
	with pytest.raises(GeminiNotConfigured) as exc:
		GeminiClient(api_key=None)
	assert exc.value.status_code == 503


async def test_generate_tries_candidates_until_one_succeeds():
	seen = []

	def handler(request):
		seen.append(request.url.path)
		assert request.url.params["key"] == "k"
		body = json.loads(request.content)
		assert body["generationConfig"] == {"temperature": 0.2}
		if "good" in request.url.path:
			return _ok("hello")
		return httpx.Response(404, text="model not found")

	client = GeminiClient(
		"k",
		base_url="https://gemini.test",
		candidates=[("v1", "bad"), ("v1", "good")],
		transport=httpx.MockTransport(handler),
	)
	async with client:
		assert await client.generate("hi", temperature=0.2) == "hello"
	assert seen == ["/v1/models/bad:generateContent", "/v1/models/good:generateContent"]


async def test_generate_raises_after_all_candidates_fail():
	def handler(request):
		if "m2" in request.url.path:
			raise httpx.ConnectError("boom", request=request)
		return httpx.Response(500, text="oops")

	client = GeminiClient("k", candidates=[("v1", "m1"), ("v1", "m2")], transport=httpx.MockTransport(handler))
	with pytest.raises(GeminiError) as exc:
		await client.generate("hi")
	await client.aclose()
	assert exc.value.status_code == 502
	assert "all models" in str(exc.value)


async def test_non_json_body_counts_as_failure():
	client = GeminiClient(
		"k",
		candidates=[("v1", "m1")],
		transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
	)
	with pytest.raises(GeminiError):
		await client.generate("hi")
	await client.aclose()


def _tutor_ai(handler):
	return GeminiTutorAI(lambda: GeminiClient("k", candidates=[("v1", "m")], transport=httpx.MockTransport(handler)))


async def test_tutor_ai_parses_questions():
	payload = '{"questions": [{"q": "Why?", "keywords": ["a", "b"]}]}'
	questions = await _tutor_ai(lambda r: _ok(payload)).generate_questions("doc")
	assert questions[0].text == "Why?"
	assert questions[0].keywords == ("a", "b")


async def test_tutor_ai_unparseable_quiz_is_client_error():
	with pytest.raises(AIClientError) as exc:
		await _tutor_ai(lambda r: _ok("Sure! Here are some questions...")).generate_questions("doc")
	assert exc.value.status_code == 502


async def test_tutor_ai_wraps_transport_failures():
	with pytest.raises(AIClientError):
		await _tutor_ai(lambda r: httpx.Response(503)).evaluate("doc", "q", ["k"], "a")


async def test_tutor_ai_not_configured_maps_to_503():
	def factory():
		raise GeminiNotConfigured("no key")

	with pytest.raises(AIClientError) as exc:
		await GeminiTutorAI(factory).answer("doc", "q")
	assert exc.value.status_code == 503


def test_quiz_prompt_truncates_document():
	prompt = build_quiz_prompt("§" * (QUIZ_DOC_CHARS + 500))
	assert prompt.count("§") == QUIZ_DOC_CHARS


async def test_invalid_url_is_reported_as_gemini_error():
	def handler(request):
		raise httpx.InvalidURL("bad base url")

	client = GeminiClient("k", candidates=[("v1", "m1")], transport=httpx.MockTransport(handler))
	with pytest.raises(GeminiError):
		await client.generate("hi")
	await client.aclose()
