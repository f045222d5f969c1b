from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

CHECKIN_AFTER_SECONDS = 30.0
CHECKIN_POLL_SECONDS = 15.0


@dataclass
class ActivityClock:
	last_activity: float = 0.0
	last_checkin: float = 0.0

	def touch(self, now: float) -> None:
		self.last_activity = now

	def reset(self, now: float) -> None:
		self.last_activity = now
		self.last_checkin = now


class InactivityMonitor:
	"""Debounced, state-gated check-in after a stretch of silence.

	``is_eligible`` reports whether the session is running, not expired and
	waiting on an answer. ``on_checkin`` posts the prompt and re-arms capture.
	"""

	def __init__(
		self,
		clock: ActivityClock,
		*,
		is_eligible: Callable[[], bool],
		on_checkin: Callable[[], None],
		checkin_after: float = CHECKIN_AFTER_SECONDS,
	) -> None:
		self.clock = clock
		self.is_eligible = is_eligible
		self.on_checkin = on_checkin
		self.checkin_after = checkin_after

	def check(self, now: float) -> bool:
		if not self.is_eligible():
			return False
		if now - self.clock.last_activity < self.checkin_after:
			return False
		if now - self.clock.last_checkin < self.checkin_after:
			return False
		self.clock.last_checkin = now
		logger.debug("inactive for %.0fs, checking in", now - self.clock.last_activity)
		self.on_checkin()
		return True


async def run_monitor(
	monitor: InactivityMonitor,
	interval: float = CHECKIN_POLL_SECONDS,
	now: Optional[Callable[[], float]] = None,
) -> None:
	now = now or time.monotonic
	while True:
		await asyncio.sleep(interval)
		monitor.check(now())
