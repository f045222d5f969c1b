from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set

from . import messages
from .ai import AIClient
from .inactivity import ActivityClock, InactivityMonitor, run_monitor
from .messages import InputValidationError, Message, Role
from .quiz import Outcome, QuizFlow
from .speech import (
	NullRecognition,
	NullSpeechOutput,
	RecognitionEvent,
	RecognitionPort,
	Scheduler,
	SpeechCaptureController,
	SpeechOutput,
	SpeechResult,
)
from .timer import SessionTimer, run_ticker

logger = logging.getLogger(__name__)


def _log_task_failure(task: asyncio.Task) -> None:
	if task.cancelled():
		return
	err = task.exception()
	if err is not None:
		logger.error("session task failed", exc_info=err)


@dataclass
class TutorConfig:
	limit_seconds: int = 30 * 60
	silence_timeout: float = 10.0
	error_grace: float = 0.5
	checkin_after: float = 30.0
	checkin_poll: float = 15.0
	voice_volume: float = 1.0
	voice_rate: float = 1.0
	voice_pitch: float = 1.0

	@classmethod
	def from_settings(cls, settings: Any) -> "TutorConfig":
		return cls(
			limit_seconds=settings.session_limit_seconds,
			silence_timeout=settings.silence_timeout_seconds,
			checkin_after=settings.checkin_after_seconds,
			checkin_poll=settings.checkin_poll_seconds,
		)


class TutorSession:
	"""One learner's dashboard: timer, speech capture, check-ins and the quiz.

	Browser globals become injected ports: ``recognition`` (the mic stream),
	``speech_output`` (text-to-speech) and ``scheduler`` (timeouts).
	"""

	def __init__(
		self,
		ai: AIClient,
		*,
		scheduler: Scheduler,
		recognition: Optional[RecognitionPort] = None,
		speech_output: Optional[SpeechOutput] = None,
		config: Optional[TutorConfig] = None,
		now: Callable[[], float] = time.monotonic,
		on_change: Optional[Callable[[], None]] = None,
	) -> None:
		self.config = config or TutorConfig()
		self.now = now
		self.on_change = on_change
		self.output = speech_output or NullSpeechOutput()
		self.messages: List[Message] = []
		self.status = ""
		self.muted = False
		self.timer = SessionTimer(self.config.limit_seconds, on_expire=self._on_expire)
		self.quiz = QuizFlow(ai, emit=self.say, accepting=lambda: not self.timer.expired)
		self.speech = SpeechCaptureController(
			recognition or NullRecognition(),
			scheduler,
			on_answer=self._on_spoken_answer,
			on_status=self._set_status,
			on_reprompt=self.say,
			can_listen=self._can_listen,
			awaiting_answer=lambda: self.quiz.awaiting_answer,
			silence_timeout=self.config.silence_timeout,
			error_grace=self.config.error_grace,
		)
		self.activity = ActivityClock()
		self.activity.reset(self.now())
		self.monitor = InactivityMonitor(
			self.activity,
			is_eligible=self._checkin_eligible,
			on_checkin=self._checkin,
			checkin_after=self.config.checkin_after,
		)
		self._pending: Set[asyncio.Task] = set()
		self._background: List[asyncio.Task] = []

	# -- output ---------------------------------------------------------

	def notify(self) -> None:
		if self.on_change is not None:
			self.on_change()

	def say(self, text: str, *, speak: bool = True) -> None:
		self.messages.append(Message(Role.ASSISTANT, text))
		if speak and not self.muted:
			self.output.cancel()
			self.output.speak(
				text,
				volume=self.config.voice_volume,
				rate=self.config.voice_rate,
				pitch=self.config.voice_pitch,
			)
		self.notify()

	def _set_status(self, text: str) -> None:
		self.status = text
		self.notify()

	def toggle_mute(self) -> bool:
		self.muted = not self.muted
		if self.muted:
			self.output.cancel()
		self.notify()
		return self.muted

	# -- session lifecycle ----------------------------------------------

	def start(self) -> bool:
		if not self.timer.start():
			self._set_status(messages.SESSION_EXPIRED)
			return False
		self.speech.permission_denied = False
		self.activity.reset(self.now())
		self._set_status("")
		self._relisten()
		return True

	def pause(self) -> None:
		self.timer.pause()
		self._silence()
		self.notify()

	def reset(self) -> None:
		self.timer.reset()
		self.quiz.reset()
		self._silence()
		self.messages.clear()
		self.status = ""
		self.activity.reset(self.now())
		logger.debug("session reset (quiz epoch %s)", self.quiz.epoch)
		self.notify()

	def tick(self) -> None:
		self.timer.tick()
		self.notify()

	def _on_expire(self) -> None:
		self._silence()
		self.status = messages.SESSION_EXPIRED
		self.say(messages.SESSION_EXPIRED, speak=False)

	def _silence(self) -> None:
		self.speech.stop_listening()
		self.output.cancel()

	# -- listening ------------------------------------------------------

	def _can_listen(self) -> bool:
		return (
			self.timer.running
			and not self.timer.expired
			and self.quiz.awaiting_answer
			and not self.speech.permission_denied
		)

	def _relisten(self) -> None:
		if self._can_listen() and not self.speech.listening:
			self.speech.start_listening()
			self.notify()

	def on_recognition(self, event: RecognitionEvent) -> None:
		if isinstance(event, SpeechResult):
			self.activity.touch(self.now())
		self.speech.handle(event)
		self.notify()

	def _on_spoken_answer(self, text: str) -> None:
		self.dispatch(self.submit_text(text))

	# -- check-ins ------------------------------------------------------

	def _checkin_eligible(self) -> bool:
		return self.timer.running and not self.timer.expired and self.quiz.awaiting_answer

	def _checkin(self) -> None:
		self.say(messages.CHECKIN)
		self._relisten()

	def check_inactivity(self, now: Optional[float] = None) -> bool:
		return self.monitor.check(self.now() if now is None else now)

	# -- document and quiz ----------------------------------------------

	def load_document(self, text: str) -> None:
		if not (text or "").strip():
			raise InputValidationError(messages.NO_DOCUMENT)
		self.activity.touch(self.now())
		self._silence()
		self.quiz.load_document(text)
		self._set_status("Document loaded. Generate a quiz to begin.")

	async def generate_quiz(self) -> bool:
		self.activity.touch(self.now())
		if self.timer.expired:
			self._set_status(messages.SESSION_EXPIRED)
			return False
		try:
			started = await self.quiz.generate_quiz()
		except InputValidationError as err:
			self._set_status(err.user_message)
			return False
		# The first question was just asked; silence is measured from here
		self.activity.touch(self.now())
		self._relisten()
		self.notify()
		return started

	async def submit_text(self, text: str) -> Optional[Outcome]:
		self.activity.touch(self.now())
		if self.timer.expired:
			self._set_status(messages.SESSION_EXPIRED)
			return None
		text = (text or "").strip()
		if text:
			self.messages.append(Message(Role.USER, text))
		self.speech.stop_listening()
		try:
			outcome = await self.quiz.submit_answer(text)
		except InputValidationError as err:
			self._set_status(err.user_message)
			self._relisten()
			return None
		self._relisten()
		self.notify()
		return outcome

	async def ask(self, question: str) -> Optional[str]:
		self.activity.touch(self.now())
		if self.timer.expired:
			self._set_status(messages.SESSION_EXPIRED)
			return None
		question = (question or "").strip()
		if question:
			self.messages.append(Message(Role.USER, question))
		try:
			return await self.quiz.ask(question)
		except InputValidationError as err:
			self._set_status(err.user_message)
			return None

	# -- task plumbing --------------------------------------------------

	def dispatch(self, coro: Awaitable[Any]) -> asyncio.Task:
		task = asyncio.ensure_future(coro)
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)
		task.add_done_callback(_log_task_failure)
		return task

	async def drain(self) -> None:
		while self._pending:
			await asyncio.gather(*list(self._pending))

	def start_background(self) -> None:
		self._background = [
			asyncio.ensure_future(run_ticker(self.timer, on_tick=self.notify)),
			asyncio.ensure_future(run_monitor(self.monitor, self.config.checkin_poll, self.now)),
		]

	async def close(self) -> None:
		self._silence()
		tasks = self._background + list(self._pending)
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		self._background = []

	def snapshot(self) -> dict:
		return {
			"timer": self.timer.to_dict(),
			"quiz": self.quiz.to_dict(),
			"speech": self.speech.to_dict(),
			"messages": [m.to_dict() for m in self.messages],
			"status": self.status,
			"muted": self.muted,
		}

