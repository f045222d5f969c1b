"""
Generative-language collaborators for the tutor.

``GeminiTutorAI`` talks to Gemini directly (used by the API routes and by
server-side sessions); ``ApiTutorAI`` goes through this service's own
``/api/ai`` routes. Both raise ``AIClientError`` for network failures,
non-success statuses and unparseable payloads.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Protocol, Sequence

from ..client import ApiClient, ApiError
from ..gemini_client import GeminiClient, GeminiError
from .questions import MalformedQuizPayload, QuizQuestion, parse_questions, question_from_item

logger = logging.getLogger(__name__)

QUIZ_DOC_CHARS = 12000
ANSWER_DOC_CHARS = 16000


class AIClientError(RuntimeError):
	def __init__(self, message: str, status_code: int = 502) -> None:
		super().__init__(message)
		self.status_code = status_code


class AIClient(Protocol):
	async def generate_questions(self, document: str) -> List[QuizQuestion]: ...

	async def answer(self, document: str, question: str) -> str: ...

	async def evaluate(self, document: str, question: str, keywords: Sequence[str], answer: str) -> str: ...


def build_quiz_prompt(document: str) -> str:
	context = document[:QUIZ_DOC_CHARS]
	return (
		"You are an expert tutor. From the document below, produce 5 progressively deeper, open-ended questions.\n"
		"For each item include 2-5 key concepts you expect in a strong answer.\n"
		"Return strict JSON:\n"
		'{"questions":[{"q":"...", "keywords":["k1","k2","k3"]}, ...]}\n'
		f"Document:\n{context}"
	)


def build_answer_prompt(document: str, question: str) -> str:
	context = document[:ANSWER_DOC_CHARS]
	system = (
		"You are a warm, concise study guide teacher. Use only the provided document. Teach, do not ask questions. "
		"Do NOT quote long passages. Explain in your own words with:\n"
		"- A 1–2 sentence overview of the topic\n"
		"- 3–5 core takeaways in plain language\n"
		"- One tiny example or analogy\n"
		"- 2–3 practical steps or tips\n"
		"- A 1–2 sentence recap\n"
		"Keep it brief and conversational. No follow-up questions."
	)
	return (
		f"{system}\n\nDocument:\n{context}\n\nTopic or question: {question}\n\n"
		"Respond succinctly in this structure (Overview, Core takeaways, Example/Analogy, Steps/Tips, Recap)."
	)


def build_eval_prompt(document: str, question: str, keywords: Sequence[str], answer: str) -> str:
	context = document[:ANSWER_DOC_CHARS]
	return (
		"You are an expert tutor. Evaluate the student's answer concisely with depth.\n"
		f"Question: {question}\n"
		f"Expected key concepts: {', '.join(keywords)}\n"
		f"Student answer: {answer}\n"
		f"Use ONLY the provided document context:\n{context}\n"
		"Provide at most 4 short bullet points:\n"
		"- Correctness and coverage of key ideas\n"
		"- Missing or incorrect points\n"
		"- One improvement suggestion\n"
		"- 1 short reinforcing tip or next step"
	)


class GeminiTutorAI:
	def __init__(self, client_factory: Callable[[], GeminiClient] = GeminiClient) -> None:
		self.client_factory = client_factory

	async def _generate(self, prompt: str, temperature: float) -> str:
		try:
			client = self.client_factory()
		except GeminiError as err:
			raise AIClientError(str(err), err.status_code) from err
		try:
			return await client.generate(prompt, temperature=temperature)
		except GeminiError as err:
			raise AIClientError(str(err), err.status_code) from err
		finally:
			await client.aclose()

	async def generate_questions(self, document: str) -> List[QuizQuestion]:
		raw = await self._generate(build_quiz_prompt(document), 0.4)
		try:
			return parse_questions(raw)
		except MalformedQuizPayload as err:
			logger.warning("unusable quiz payload: %s", err)
			raise AIClientError(f"Gemini returned unparseable response: {err}") from err

	async def answer(self, document: str, question: str) -> str:
		return await self._generate(build_answer_prompt(document, question), 0.3)

	async def evaluate(self, document: str, question: str, keywords: Sequence[str], answer: str) -> str:
		return await self._generate(build_eval_prompt(document, question, keywords, answer), 0.2)


class ApiTutorAI:
	"""Same contract, over HTTP against ``/api/ai``."""

	def __init__(self, api: ApiClient) -> None:
		self.api = api

	async def _post(self, path: str, body: dict) -> dict:
		try:
			return await self.api.post(path, body)
		except ApiError as err:
			raise AIClientError(str(err), err.status_code or 502) from err

	async def generate_questions(self, document: str) -> List[QuizQuestion]:
		data = await self._post("/ai/quiz", {"docText": document})
		items = data.get("questions")
		if not isinstance(items, list):
			raise AIClientError("quiz response has no questions")
		questions = [q for q in (question_from_item(item) for item in items) if q is not None]
		if not questions:
			raise AIClientError("quiz response has no valid questions")
		return questions

	async def answer(self, document: str, question: str) -> str:
		data = await self._post("/ai/answer", {"docText": document, "question": question})
		return str(data.get("answer") or "")

	async def evaluate(self, document: str, question: str, keywords: Sequence[str], answer: str) -> str:
		data = await self._post(
			"/ai/eval",
			{"docText": document, "question": question, "answer": answer, "keywords": list(keywords)},
		)
		return str(data.get("feedback") or "")
