import itertools
import logging
import typing

import murmur.clock


logger = logging.getLogger(__name__)


class TimerSet:

	"""
	An owned arena of outstanding deferred callbacks.

	Every timer a generator arms lives here under an integer id until it
	fires or is cancelled.  A fired timer removes itself from the arena
	before its callback runs, so the callback is free to arm its own
	successor; the arena therefore only ever holds live handles and
	``cancel_all()`` is a complete shutdown of pending work.
	"""

	def __init__ (self, clock: murmur.clock.Clock) -> None:

		self._clock = clock
		self._handles: typing.Dict[int, murmur.clock.Cancellable] = {}
		self._ids = itertools.count()

	def __len__ (self) -> int:
		return len(self._handles)

	def __contains__ (self, timer_id: object) -> bool:
		return timer_id in self._handles

	@property
	def pending (self) -> typing.List[int]:

		"""Ids of every outstanding timer, oldest first."""

		return sorted(self._handles)

	def arm (self, delay: float, callback: typing.Callable[[], typing.Any]) -> int:

		"""Run ``callback`` after ``delay`` seconds and return the timer id."""

		if delay < 0:
			raise ValueError(f"Timer delay cannot be negative ({delay})")

		timer_id = next(self._ids)

		def _fire () -> None:

			# A handle missing from the arena was cancelled after the clock
			# had already committed to running it.
			if self._handles.pop(timer_id, None) is None:
				return

			callback()

		self._handles[timer_id] = self._clock.call_later(delay, _fire)

		return timer_id

	def cancel (self, timer_id: int) -> bool:

		"""Cancel one timer.  Returns False if it already fired or was cancelled."""

		handle = self._handles.pop(timer_id, None)

		if handle is None:
			return False

		handle.cancel()
		return True

	def cancel_all (self) -> int:

		"""Cancel every outstanding timer and return how many there were."""

		handles = list(self._handles.values())
		self._handles.clear()

		for handle in handles:
			handle.cancel()

		if handles:
			logger.debug(f"Cancelled {len(handles)} pending timer(s)")

		return len(handles)
