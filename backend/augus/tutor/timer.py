from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SessionTimer:
	"""Elapsed-seconds counter with a hard ceiling.

	Reaching ``limit_seconds`` stops the timer, marks it expired and calls
	``on_expire`` once. Only ``reset()`` clears the expired state.
	"""

	def __init__(self, limit_seconds: int, on_expire: Optional[Callable[[], None]] = None) -> None:
		if limit_seconds <= 0:
			raise ValueError("limit_seconds must be positive")
		self.limit_seconds = int(limit_seconds)
		self.on_expire = on_expire
		self.elapsed_seconds = 0
		self.running = False
		self.expired = False

	def start(self) -> bool:
		if self.expired:
			return False
		self.running = True
		return True

	def pause(self) -> None:
		self.running = False

	def tick(self) -> None:
		if not self.running or self.expired:
			return
		self.elapsed_seconds = min(self.elapsed_seconds + 1, self.limit_seconds)
		if self.elapsed_seconds >= self.limit_seconds:
			self.running = False
			self.expired = True
			logger.debug("session timer expired after %ss", self.elapsed_seconds)
			if self.on_expire is not None:
				self.on_expire()

	def reset(self) -> None:
		self.elapsed_seconds = 0
		self.running = False
		self.expired = False

	@property
	def remaining_seconds(self) -> int:
		return self.limit_seconds - self.elapsed_seconds

	def formatted(self) -> str:
		hh, rest = divmod(self.elapsed_seconds, 3600)
		mm, ss = divmod(rest, 60)
		return f"{hh:02d}:{mm:02d}:{ss:02d}"

	def to_dict(self) -> dict:
		return {
			"elapsed_seconds": self.elapsed_seconds,
			"limit_seconds": self.limit_seconds,
			"running": self.running,
			"expired": self.expired,
			"clock": self.formatted(),
		}


async def run_ticker(timer: SessionTimer, interval: float = 1.0, on_tick: Optional[Callable[[], None]] = None) -> None:
	# Runs until cancelled; paused timers simply ignore ticks
	while True:
		await asyncio.sleep(interval)
		if timer.running:
			timer.tick()
			if on_tick is not None:
				on_tick()
