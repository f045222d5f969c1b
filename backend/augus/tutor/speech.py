"""
Speech capture state machine.

Recognition events (from a browser over the session WebSocket, or from a fake
source in tests) are fed to ``SpeechCaptureController.handle``. Timers go
through an injected scheduler so the controller never touches a real clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Union

from . import messages

logger = logging.getLogger(__name__)


SILENCE_TIMEOUT_SECONDS = 10.0
ERROR_GRACE_SECONDS = 0.5

ERROR_PERMISSION = "permission-denied"
ERROR_NO_SPEECH = "no-speech"
ERROR_OTHER = "other"

_PERMISSION_CODES = {"not-allowed", "service-not-allowed", "permission-denied", "permission_denied"}
_NO_SPEECH_CODES = {"no-speech", "no_speech"}


def classify_error(code: Optional[str]) -> str:
	code = (code or "").strip().lower()
	if code in _PERMISSION_CODES:
		return ERROR_PERMISSION
	if code in _NO_SPEECH_CODES:
		return ERROR_NO_SPEECH
	return ERROR_OTHER


class SpeechState(str, Enum):
	IDLE = "idle"
	LISTENING = "listening"
	FINALIZING = "finalizing"


@dataclass(frozen=True)
class SpeechResult:
	text: str
	is_final: bool = False


@dataclass(frozen=True)
class SpeechError:
	kind: str


@dataclass(frozen=True)
class SpeechEnd:
	pass


RecognitionEvent = Union[SpeechResult, SpeechError, SpeechEnd]


class TimerHandle(Protocol):
	def cancel(self) -> Any: ...


class Scheduler(Protocol):
	"""Anything with ``call_later``; an asyncio event loop qualifies."""

	def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class RecognitionPort(Protocol):
	"""The single recognition stream. ``start`` raises PermissionError when the mic is denied."""

	def start(self) -> None: ...

	def stop(self) -> None: ...


class SpeechOutput(Protocol):
	"""Text-to-speech. A new utterance replaces any pending one."""

	def speak(self, text: str, *, volume: float = 1.0, rate: float = 1.0, pitch: float = 1.0) -> None: ...

	def cancel(self) -> None: ...


class NullRecognition:
	def start(self) -> None:
		pass

	def stop(self) -> None:
		pass


class NullSpeechOutput:
	def speak(self, text: str, *, volume: float = 1.0, rate: float = 1.0, pitch: float = 1.0) -> None:
		pass

	def cancel(self) -> None:
		pass


class TranscriptBuffer:
	"""Final fragments accumulate; the latest interim fragment is kept on top."""

	def __init__(self) -> None:
		self._final = ""
		self._interim = ""

	def append(self, fragment: str, is_final: bool = True) -> None:
		fragment = (fragment or "").strip()
		if is_final:
			if fragment:
				self._final = f"{self._final} {fragment}".strip()
			self._interim = ""
		else:
			self._interim = fragment

	@property
	def text(self) -> str:
		return f"{self._final} {self._interim}".strip()

	@property
	def is_empty(self) -> bool:
		return not self.text

	def clear(self) -> None:
		self._final = ""
		self._interim = ""


def _noop(*_args) -> None:
	pass


class SpeechCaptureController:
	def __init__(
		self,
		recognition: RecognitionPort,
		scheduler: Scheduler,
		*,
		on_answer: Callable[[str], None],
		on_status: Callable[[str], None] = _noop,
		on_reprompt: Callable[[str], None] = _noop,
		can_listen: Callable[[], bool] = lambda: True,
		awaiting_answer: Callable[[], bool] = lambda: False,
		silence_timeout: float = SILENCE_TIMEOUT_SECONDS,
		error_grace: float = ERROR_GRACE_SECONDS,
	) -> None:
		self.recognition = recognition
		self.scheduler = scheduler
		self.on_answer = on_answer
		self.on_status = on_status
		self.on_reprompt = on_reprompt
		self.can_listen = can_listen
		self.awaiting_answer = awaiting_answer
		self.silence_timeout = silence_timeout
		self.error_grace = error_grace
		self.buffer = TranscriptBuffer()
		self.state = SpeechState.IDLE
		self.permission_denied = False
		self._timer: Optional[TimerHandle] = None
		# Bumped on every start/stop so late timer callbacks can be told apart
		self._capture_id = 0

	@property
	def listening(self) -> bool:
		return self.state is SpeechState.LISTENING

	def start_listening(self) -> bool:
		if self.state is not SpeechState.IDLE:
			self._halt()
			self.buffer.clear()
		self._capture_id += 1
		try:
			self.recognition.start()
		except PermissionError:
			logger.info("microphone permission denied")
			self.permission_denied = True
			self.state = SpeechState.IDLE
			self.on_status(messages.MIC_DENIED)
			return False
		self.permission_denied = False
		self.state = SpeechState.LISTENING
		logger.debug("listening (capture %s)", self._capture_id)
		return True

	def stop_listening(self) -> None:
		self._halt()
		self.buffer.clear()
		self.state = SpeechState.IDLE

	def handle(self, event: RecognitionEvent) -> None:
		if self.state is not SpeechState.LISTENING:
			logger.debug("ignoring %s while %s", type(event).__name__, self.state.value)
			return
		if isinstance(event, SpeechResult):
			self.buffer.append(event.text, event.is_final)
			self._arm(self.silence_timeout, self.finalize)
		elif isinstance(event, SpeechEnd):
			self.finalize()
		elif isinstance(event, SpeechError):
			self._on_error(event.kind)

	def _on_error(self, kind: str) -> None:
		if kind == ERROR_PERMISSION:
			self.permission_denied = True
			self._halt()
			self.buffer.clear()
			self.state = SpeechState.IDLE
			self.on_status(messages.MIC_DENIED)
			return
		self.on_status(messages.NO_SPEECH if kind == ERROR_NO_SPEECH else messages.SPEECH_ERROR)
		self._arm(self.error_grace, self.finalize)

	def finalize(self) -> None:
		if self.state is not SpeechState.LISTENING:
			return
		self.state = SpeechState.FINALIZING
		self._halt()
		text = self.buffer.text.strip()
		self.buffer.clear()
		if text:
			self.state = SpeechState.IDLE
			logger.debug("finalized answer (%d chars)", len(text))
			self.on_answer(text)
			return
		if self.awaiting_answer() and self.can_listen():
			# Silence is not a failure while a question is outstanding
			self.on_reprompt(messages.REPROMPT)
			self.state = SpeechState.IDLE
			self.start_listening()
			return
		self.state = SpeechState.IDLE

	def _arm(self, delay: float, callback: Callable[[], None]) -> None:
		self._cancel_timer()
		capture_id = self._capture_id

		def fire() -> None:
			if capture_id == self._capture_id:
				callback()

		self._timer = self.scheduler.call_later(delay, fire)

	def _cancel_timer(self) -> None:
		if self._timer is not None:
			self._timer.cancel()
			self._timer = None

	def _halt(self) -> None:
		self._cancel_timer()
		self._capture_id += 1
		self.recognition.stop()

	def to_dict(self) -> dict:
		return {
			"state": self.state.value,
			"transcript": self.buffer.text,
			"permission_denied": self.permission_denied,
		}
