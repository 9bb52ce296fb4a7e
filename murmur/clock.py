"""Clocks that drive deferred callbacks.

Everything in murmur that happens later goes through a clock's
``call_later()``.  The asyncio event loop already satisfies the
:class:`Clock` protocol, so live playback simply passes
``asyncio.get_running_loop()``.

:class:`VirtualClock` is a simulated clock: nothing fires until
:meth:`VirtualClock.advance` moves time forward, at which point every due
callback runs in deadline order.  It is used for offline runs and makes
timer behaviour deterministic in tests.
"""

import dataclasses
import heapq
import itertools
import typing


@typing.runtime_checkable
class Cancellable (typing.Protocol):

	"""A handle returned by ``call_later()`` that can be cancelled."""

	def cancel (self) -> None:
		...


@typing.runtime_checkable
class Clock (typing.Protocol):

	"""
	Protocol for anything that can run callbacks after a delay.

	``asyncio.AbstractEventLoop`` conforms to this protocol.
	"""

	def time (self) -> float:
		...

	def call_later (self, delay: float, callback: typing.Callable[..., typing.Any], *args: typing.Any) -> Cancellable:
		...


@dataclasses.dataclass
class VirtualTimer:

	"""A pending callback on a :class:`VirtualClock`."""

	when: float
	callback: typing.Callable[..., typing.Any]
	args: typing.Tuple[typing.Any, ...] = ()
	_cancelled: bool = False

	def cancel (self) -> None:
		self._cancelled = True

	def cancelled (self) -> bool:
		return self._cancelled


class VirtualClock:

	"""
	A clock whose time only moves when told to.

	Example:
		```python
		clock = murmur.clock.VirtualClock()
		clock.call_later(2.0, print, "two seconds")
		clock.advance(5.0)   # prints "two seconds"
		```
	"""

	def __init__ (self, start: float = 0.0) -> None:

		self._now = start
		self._queue: typing.List[typing.Tuple[float, int, VirtualTimer]] = []
		self._counter = itertools.count()

	def time (self) -> float:

		"""Current simulated time in seconds."""

		return self._now

	def call_later (self, delay: float, callback: typing.Callable[..., typing.Any], *args: typing.Any) -> VirtualTimer:

		"""Schedule ``callback(*args)`` to run ``delay`` seconds from now."""

		if delay < 0:
			raise ValueError("Delay cannot be negative")

		timer = VirtualTimer(when=self._now + delay, callback=callback, args=args)
		heapq.heappush(self._queue, (timer.when, next(self._counter), timer))

		return timer

	@property
	def pending (self) -> int:

		"""Number of armed, uncancelled callbacks."""

		return sum(1 for _, _, timer in self._queue if not timer.cancelled())

	def next_deadline (self) -> typing.Optional[float]:

		"""Time of the earliest uncancelled callback, or ``None`` when idle."""

		live = [when for when, _, timer in self._queue if not timer.cancelled()]
		return min(live) if live else None

	def advance (self, seconds: float) -> int:

		"""
		Move time forward by ``seconds``, running every callback that falls due.

		Callbacks run in deadline order (ties in arming order) with the clock
		set to their deadline, and may arm further callbacks; those also run
		if they fall inside the window.  Returns the number of callbacks run.
		"""

		if seconds < 0:
			raise ValueError("Cannot move time backwards")

		target = self._now + seconds
		fired = 0

		while self._queue and self._queue[0][0] <= target:

			when, _, timer = heapq.heappop(self._queue)

			if timer.cancelled():
				continue

			self._now = when
			timer.callback(*timer.args)
			fired += 1

		self._now = target

		return fired
