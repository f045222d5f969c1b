from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Role(str, Enum):
	USER = "user"
	ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
	role: Role
	content: str

	def to_dict(self) -> Dict[str, str]:
		return {"role": self.role.value, "content": self.content}


class InputValidationError(ValueError):
	"""Rejected input; ``user_message`` is shown to the user as-is."""

	def __init__(self, user_message: str) -> None:
		super().__init__(user_message)
		self.user_message = user_message


# User-facing status strings
SESSION_EXPIRED = "Session time is up. Reset to start a new session."
NO_DOCUMENT = "Please upload a document first."
EMPTY_QUESTION = "Please type or say a question first."
EMPTY_ANSWER = "I didn't catch an answer. Try again, or say \"hint\" or \"skip\"."
NOT_AWAITING = "There is no question waiting for an answer. Generate a quiz to begin."
MIC_DENIED = "Microphone permission was denied. You can still type your answers."
NO_SPEECH = "I didn't hear anything. I'm still listening."
SPEECH_ERROR = "Speech recognition hit a problem. Using what I heard so far."
REPROMPT = "Take your time. Answer when you're ready, or say \"hint\" or \"skip\"."
CHECKIN = "Are you still there? Say \"hint\" for a clue, \"repeat\" to hear the question again, or \"skip\" to move on."
QUIZ_COMPLETE = "That's the end of the quiz. Nice work! Reset to start again or ask me anything about the document."
QUIZ_FALLBACK_NOTICE = "The AI tutor is unavailable, so I made questions from the document's key terms."
