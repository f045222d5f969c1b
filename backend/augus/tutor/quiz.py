from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from . import messages
from .ai import AIClient, AIClientError
from .messages import InputValidationError
from .questions import MAX_QUESTIONS, QuizQuestion
from .scoring import fallback_questions, keyword_score, local_answer, local_feedback, local_hint

logger = logging.getLogger(__name__)


HINT_COMMANDS = frozenset({
	"hint", "a hint", "hint please", "give me a hint", "give hint", "i need a hint", "can i have a hint", "can i get a hint",
})
SKIP_COMMANDS = frozenset({
	"skip", "skip it", "skip this", "skip question", "skip this question", "next", "next question", "pass",
})
REPEAT_COMMANDS = frozenset({
	"repeat", "repeat question", "repeat the question", "repeat that", "say again", "say that again", "again",
})


def normalize_command(text: str) -> str:
	text = re.sub(r"[^\w\s]", " ", (text or "").lower())
	return re.sub(r"\s+", " ", text).strip()


class QuizPhase(str, Enum):
	NOT_STARTED = "not_started"
	AWAITING_ANSWER = "awaiting_answer"
	EVALUATING = "evaluating"
	COMPLETED = "completed"


class Outcome(str, Enum):
	HINT = "hint"
	SKIPPED = "skipped"
	REPEATED = "repeated"
	EVALUATED = "evaluated"
	# The quiz was reset or the session expired while the request was in flight
	STALE = "stale"


@dataclass
class QuizState:
	questions: List[QuizQuestion] = field(default_factory=list)
	current_index: int = 0
	awaiting_answer: bool = False

	@property
	def current(self) -> Optional[QuizQuestion]:
		if 0 <= self.current_index < len(self.questions):
			return self.questions[self.current_index]
		return None


class QuizFlow:
	"""Sequential quiz over one document.

	``emit`` receives every assistant message. ``accepting`` is consulted
	before applying any AI response; together with the epoch it drops
	responses that arrive after a reset or after the session expired.
	"""

	def __init__(
		self,
		ai: AIClient,
		*,
		emit: Callable[[str], None],
		accepting: Callable[[], bool] = lambda: True,
	) -> None:
		self.ai = ai
		self.emit = emit
		self.accepting = accepting
		self.document = ""
		self.state = QuizState()
		self.phase = QuizPhase.NOT_STARTED
		self.epoch = 0
		self.used_fallback = False

	@property
	def awaiting_answer(self) -> bool:
		return self.phase is QuizPhase.AWAITING_ANSWER and self.state.awaiting_answer

	@property
	def current_question(self) -> Optional[QuizQuestion]:
		return self.state.current

	def reset(self) -> None:
		self.epoch += 1
		self.state = QuizState()
		self.phase = QuizPhase.NOT_STARTED
		self.used_fallback = False

	def load_document(self, text: str) -> None:
		self.reset()
		self.document = (text or "").strip()

	def _is_current(self, epoch: int) -> bool:
		if epoch != self.epoch or not self.accepting():
			logger.debug("dropping response from epoch %s (now %s)", epoch, self.epoch)
			return False
		return True

	async def generate_quiz(self, document: Optional[str] = None) -> bool:
		if document is not None:
			self.load_document(document)
		if not self.document:
			raise InputValidationError(messages.NO_DOCUMENT)
		self.reset()
		epoch = self.epoch
		questions: List[QuizQuestion] = []
		try:
			questions = await self.ai.generate_questions(self.document)
		except AIClientError as err:
			logger.warning("quiz generation failed, using local questions: %s", err)
		except Exception:
			logger.exception("unexpected error from quiz generation, using local questions")
		if not self._is_current(epoch):
			return False
		if not questions:
			questions = fallback_questions(self.document)
			self.used_fallback = True
			if not questions:
				self.emit("I couldn't find enough text in the document to build a quiz.")
				return False
			self.emit(messages.QUIZ_FALLBACK_NOTICE)
		self.state = QuizState(questions=list(questions[:MAX_QUESTIONS]), current_index=0, awaiting_answer=True)
		self.phase = QuizPhase.AWAITING_ANSWER
		self.ask_current()
		return True

	def ask_current(self) -> None:
		question = self.state.current
		if question is None:
			return
		total = len(self.state.questions)
		self.emit(f"Question {self.state.current_index + 1} of {total}: {question.text}")

	async def submit_answer(self, text: str) -> Outcome:
		if not self.awaiting_answer:
			raise InputValidationError(messages.NOT_AWAITING)
		text = (text or "").strip()
		if not text:
			raise InputValidationError(messages.EMPTY_ANSWER)
		command = normalize_command(text)
		if command in HINT_COMMANDS:
			self.emit(local_hint(self.document, self.state.current))
			return Outcome.HINT
		if command in REPEAT_COMMANDS:
			self.ask_current()
			return Outcome.REPEATED
		if command in SKIP_COMMANDS:
			self._advance()
			return Outcome.SKIPPED
		return await self._evaluate(text)

	async def _evaluate(self, answer: str) -> Outcome:
		question = self.state.current
		epoch = self.epoch
		self.phase = QuizPhase.EVALUATING
		self.state.awaiting_answer = False
		feedback = ""
		try:
			feedback = (await self.ai.evaluate(self.document, question.text, question.keywords, answer)).strip()
		except AIClientError as err:
			logger.warning("evaluation failed, scoring locally: %s", err)
		except Exception:
			logger.exception("unexpected error from evaluation, scoring locally")
		if not self._is_current(epoch):
			return Outcome.STALE
		if not feedback:
			feedback = local_feedback(keyword_score(answer, question.keywords))
		self.emit(feedback)
		self._advance()
		return Outcome.EVALUATED

	def _advance(self) -> None:
		self.state.current_index += 1
		if self.state.current_index >= len(self.state.questions):
			self.state.current_index = len(self.state.questions)
			self.state.awaiting_answer = False
			self.phase = QuizPhase.COMPLETED
			self.emit(messages.QUIZ_COMPLETE)
			return
		self.state.awaiting_answer = True
		self.phase = QuizPhase.AWAITING_ANSWER
		self.ask_current()

	async def ask(self, question: str) -> Optional[str]:
		"""Free-form question about the document, outside the quiz sequence."""
		question = (question or "").strip()
		if not self.document:
			raise InputValidationError(messages.NO_DOCUMENT)
		if not question:
			raise InputValidationError(messages.EMPTY_QUESTION)
		epoch = self.epoch
		answer = ""
		try:
			answer = (await self.ai.answer(self.document, question)).strip()
		except AIClientError as err:
			logger.warning("answer request failed, using document excerpt: %s", err)
		except Exception:
			logger.exception("unexpected error from answer request, using document excerpt")
		if not self._is_current(epoch):
			return None
		if not answer:
			answer = local_answer(self.document, question)
		self.emit(answer)
		return answer

	def to_dict(self) -> dict:
		return {
			"phase": self.phase.value,
			"current_index": self.state.current_index,
			"total": len(self.state.questions),
			"awaiting_answer": self.awaiting_answer,
			"question": self.state.current.to_dict() if self.state.current else None,
			"has_document": bool(self.document),
			"used_fallback": self.used_fallback,
		}
