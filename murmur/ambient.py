"""Ambient pattern scheduler.

The scheduler owns a rig of pad, chime, bass or drone voices and layers
any number of independent self-renewing callback streams on top of it.
What the streams actually play is decided by an :class:`Engine`, a
strategy object with four hooks:

- ``build(scheduler)`` allocates the voices, effects and modulators and
  returns them as a :class:`murmur.lifecycle.Rig`.
- ``initiate(scheduler)`` starts the streams, each one a chain of
  :meth:`AmbientScheduler.schedule_next` calls.
- ``on_scale_change(scheduler, scale)`` lets running streams re-seed.
- ``on_stop(scheduler)`` silences anything the streams hold open.

A stream is just a callback that plays something and then calls
``schedule_next`` with itself::

	def pad (self, scheduler):
		scheduler.voice("pad").trigger_attack_release(scheduler.get_random_chord(3), 8.0)
		scheduler.schedule_next(lambda: self.pad(scheduler), 4.0, 8.0)
"""

import abc
import dataclasses
import logging
import random
import typing

import murmur.clock
import murmur.graph
import murmur.lifecycle
import murmur.timers


logger = logging.getLogger(__name__)


# Seconds between stop() and the rig being freed.
GRACE_WINDOW = 1.0

FALLBACK_NOTE = "C4"


@dataclasses.dataclass
class AmbientConfig:

	"""Live settings shared by every stream of one scheduler."""

	density: float = 5
	reverb_amount: float = 0.5


class Engine (abc.ABC):

	"""
	Base class for pattern-initiation strategies.

	Subclasses must implement ``build()`` and ``initiate()``; the scale
	change and stop hooks default to doing nothing.
	"""

	name: str
	description: str

	# MIDI channels the rig's voices need.
	CHANNELS = 4

	@abc.abstractmethod
	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:
		...

	@abc.abstractmethod
	def initiate (self, scheduler: "AmbientScheduler") -> None:
		...

	def on_scale_change (self, scheduler: "AmbientScheduler", scale: typing.List[str]) -> None:
		pass

	def on_stop (self, scheduler: "AmbientScheduler") -> None:
		pass


class AmbientScheduler:

	"""
	Runs one engine's layered streams over a rig it owns.

	Example:
		```python
		ambient = murmur.ambient.AmbientScheduler(engines.create("cosmic_drift"), loop)
		ambient.initialize(master, global_reverb, global_delay, global_filter)
		ambient.set_scale(mood.scale())
		ambient.start()
		```
	"""

	def __init__ (
		self,
		engine: Engine,
		clock: murmur.clock.Clock,
		rng: typing.Optional[random.Random] = None,
		config: typing.Optional[AmbientConfig] = None,
		base_channel: int = 1,
		channels: typing.Optional[typing.Sequence[int]] = None
	) -> None:

		"""
		Parameters:
			engine: Strategy that builds the rig and starts the streams.
			clock: Anything with ``time()`` and ``call_later()``.
			rng: Random source (a fresh ``random.Random`` when omitted).
			config: Density and reverb settings.
			base_channel: First of ``engine.CHANNELS`` consecutive MIDI channels for the voices.
			channels: Explicit MIDI channels for the voices, overriding ``base_channel``.
		"""

		self.engine = engine
		self.clock = clock
		self.rng = rng or random.Random()
		self.config = config or AmbientConfig()
		self.channels = list(channels) if channels is not None else [base_channel + i for i in range(engine.CHANNELS)]
		self.base_channel = self.channels[0]

		self.lifecycle = murmur.lifecycle.Lifecycle(clock, f"ambient:{engine.name}", GRACE_WINDOW)
		self.rig: typing.Optional[murmur.lifecycle.Rig] = None
		self.scale: typing.List[str] = []

		self.master_volume: typing.Optional[murmur.graph.Node] = None
		self.global_reverb: typing.Optional[murmur.graph.Node] = None
		self.global_delay: typing.Optional[murmur.graph.Node] = None
		self.global_filter: typing.Optional[murmur.graph.Node] = None

	@property
	def state (self) -> murmur.lifecycle.State:
		return self.lifecycle.state

	@property
	def active (self) -> bool:
		return self.lifecycle.active

	@property
	def timers (self) -> murmur.timers.TimerSet:
		return self.lifecycle.timers

	def channel (self, index: int) -> int:

		"""MIDI channel for the engine's ``index``-th voice."""

		return self.channels[index]

	def voice (self, name: str) -> typing.Any:

		if self.rig is None:
			return None

		return self.rig.voices.get(name)

	def initialize (
		self,
		master_volume: murmur.graph.Node,
		global_reverb: typing.Optional[murmur.graph.Node] = None,
		global_delay: typing.Optional[murmur.graph.Node] = None,
		global_filter: typing.Optional[murmur.graph.Node] = None
	) -> None:

		"""Bind the shared output destinations.  Nothing is allocated here."""

		self.master_volume = master_volume
		self.global_reverb = global_reverb
		self.global_delay = global_delay
		self.global_filter = global_filter

	def set_scale (self, scale: typing.Sequence[str]) -> None:

		self.scale = list(scale)

		if self.lifecycle.active:
			self.engine.on_scale_change(self, self.scale)

	def start (self) -> None:

		if self.lifecycle.active:
			return

		if self.rig is None:
			self.rig = self.engine.build(self)

		self.lifecycle.activate()
		self.engine.initiate(self)

		logger.info(f"Ambient engine started: {self.engine.name}")

	def stop (self) -> None:

		"""Cancel every stream, release the voices and free the rig after the grace window."""

		if not self._halt():
			return

		self.lifecycle.quiesce(self._finalize)

		logger.info(f"Ambient engine stopped: {self.engine.name}")

	def dispose (self) -> None:

		"""Free the rig now: modulators, then voices, then effects."""

		if self.lifecycle.state is murmur.lifecycle.State.FINALIZED:
			return

		self._halt()
		self.lifecycle.finalize_now(self._finalize)

	def _halt (self) -> bool:

		if not self.lifecycle.deactivate():
			return False

		try:
			self.engine.on_stop(self)
		except Exception as exc:
			logger.warning(f"{self.engine.name}: stop hook failed: {exc}")

		if self.rig is not None:
			self.rig.release_voices()
			self.rig.stop_modulators()

		return True

	def _finalize (self) -> None:

		if self.rig is not None:
			self.rig.dispose()
			self.rig = None

	def schedule_next (self, callback: typing.Callable[[], typing.Any], min_time: float, max_time: float) -> typing.Optional[int]:

		"""Run ``callback`` once, ``uniform(min_time, max_time)`` seconds from now.

		The callback only runs if the scheduler is still active when the
		timer fires.  Engines build recurring streams by having the callback
		call ``schedule_next`` again.

		Returns:
			The timer id, or ``None`` when the scheduler is not active.
		"""

		if not self.lifecycle.active:
			return None

		delay = self.rng.uniform(min_time, max_time)

		def _fire () -> None:

			if not self.lifecycle.active:
				return

			try:
				callback()
			except Exception:
				logger.exception(f"Error in {self.engine.name} stream - it will not reschedule")

		return self.lifecycle.timers.arm(delay, _fire)

	def get_random_note (self) -> str:

		if not self.scale:
			return FALLBACK_NOTE

		return self.rng.choice(self.scale)

	def get_random_chord (self, size: int = 3) -> typing.List[str]:
		return [self.get_random_note() for _ in range(size)]

	def update_density (self, value: float) -> None:
		self.config.density = value

	def update_reverb (self, value: float) -> None:

		self.config.reverb_amount = value

		if self.rig is None:
			return

		for effect in self.rig.effects:
			if murmur.graph.is_reverb(effect):
				effect.wet.value = value
