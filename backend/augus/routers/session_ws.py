"""
Tutoring session over a WebSocket.

The browser keeps the microphone and the speaker; everything else (timer,
silence detection, check-ins, quiz flow) runs here in a ``TutorSession``.

Client → server frames::

	{"type": "start" | "pause" | "reset" | "mute" | "quiz" | "snapshot"}
	{"type": "document", "text": "..."}
	{"type": "answer" | "ask", "text": "..."}
	{"type": "speech", "text": "...", "is_final": bool}
	{"type": "speech_error", "error": "not-allowed" | "no-speech" | ...}
	{"type": "speech_end"}

Server → client frames::

	{"type": "snapshot", "session": {...}}
	{"type": "listen", "on": bool}
	{"type": "speak", "text": "...", "volume": 1, "rate": 1, "pitch": 1}
	{"type": "cancel_speech"}
	{"type": "error", "detail": "..."}
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..db import get_db
from ..settings import settings
from ..tutor.ai import AIClient
from ..tutor.messages import InputValidationError
from ..tutor.session import TutorConfig, TutorSession
from ..tutor.speech import SpeechEnd, SpeechError, SpeechResult, classify_error
from .ai import get_tutor_ai
from .auth import user_for_token

router = APIRouter(prefix="/api/session", tags=["session"])
logger = logging.getLogger(__name__)

_SNAPSHOT = object()


class SessionChannel:
	"""Outgoing frame queue shared by the ports; snapshots are coalesced."""

	def __init__(self) -> None:
		self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
		self._snapshot_pending = False

	def send(self, frame: Dict[str, Any]) -> None:
		self.queue.put_nowait(frame)

	def mark_changed(self) -> None:
		if not self._snapshot_pending:
			self._snapshot_pending = True
			self.queue.put_nowait(_SNAPSHOT)

	async def pump(self, websocket: WebSocket, session: TutorSession) -> None:
		while True:
			item = await self.queue.get()
			if item is _SNAPSHOT:
				self._snapshot_pending = False
				item = {"type": "snapshot", "session": session.snapshot()}
			await websocket.send_json(item)


class ChannelRecognition:
	def __init__(self, channel: SessionChannel) -> None:
		self.channel = channel

	def start(self) -> None:
		self.channel.send({"type": "listen", "on": True})

	def stop(self) -> None:
		self.channel.send({"type": "listen", "on": False})


class ChannelSpeechOutput:
	def __init__(self, channel: SessionChannel) -> None:
		self.channel = channel

	def speak(self, text: str, *, volume: float = 1.0, rate: float = 1.0, pitch: float = 1.0) -> None:
		self.channel.send({"type": "speak", "text": text, "volume": volume, "rate": rate, "pitch": pitch})

	def cancel(self) -> None:
		self.channel.send({"type": "cancel_speech"})


def _text(frame: Dict[str, Any]) -> str:
	return str(frame.get("text") or "")


def handle_frame(session: TutorSession, frame: Dict[str, Any]) -> Optional[str]:
	"""Apply one client frame. Returns an error detail for unusable frames."""
	kind = frame.get("type")
	if kind == "start":
		session.start()
	elif kind == "pause":
		session.pause()
	elif kind == "reset":
		session.reset()
	elif kind == "mute":
		session.toggle_mute()
	elif kind == "snapshot":
		session.notify()
	elif kind == "document":
		try:
			session.load_document(_text(frame))
		except InputValidationError as err:
			return err.user_message
	elif kind == "quiz":
		session.dispatch(session.generate_quiz())
	elif kind == "answer":
		session.dispatch(session.submit_text(_text(frame)))
	elif kind == "ask":
		session.dispatch(session.ask(_text(frame)))
	elif kind == "speech":
		session.on_recognition(SpeechResult(_text(frame), bool(frame.get("is_final"))))
	elif kind == "speech_error":
		session.on_recognition(SpeechError(classify_error(frame.get("error"))))
	elif kind == "speech_end":
		session.on_recognition(SpeechEnd())
	else:
		return f"unknown frame type: {kind!r}"
	return None


@router.websocket("/ws")
async def session_ws(
	websocket: WebSocket,
	token: Optional[str] = None,
	db: Session = Depends(get_db),
	ai: AIClient = Depends(get_tutor_ai),
):
	try:
		user = user_for_token(token, db)
	except HTTPException:
		await websocket.close(code=4401)
		return
	await websocket.accept()
	channel = SessionChannel()
	session = TutorSession(
		ai,
		scheduler=asyncio.get_running_loop(),
		recognition=ChannelRecognition(channel),
		speech_output=ChannelSpeechOutput(channel),
		config=TutorConfig.from_settings(settings),
		on_change=channel.mark_changed,
	)
	session.start_background()
	sender = asyncio.ensure_future(channel.pump(websocket, session))
	channel.mark_changed()
	logger.info("tutor session opened for user %s", user.id)
	try:
		while True:
			raw = await websocket.receive_text()
			try:
				frame = json.loads(raw)
			except ValueError:
				frame = None
			if not isinstance(frame, dict):
				channel.send({"type": "error", "detail": "frames must be JSON objects"})
				continue
			error = handle_frame(session, frame)
			if error:
				channel.send({"type": "error", "detail": error})
	except WebSocketDisconnect:
		logger.info("tutor session closed for user %s", user.id)
	finally:
		await session.close()
		sender.cancel()
		await asyncio.gather(sender, return_exceptions=True)
