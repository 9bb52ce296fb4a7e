"""Top-level control of the ambient bed, the melody and the environment layers.

The managers hold the choices an external controller (the CLI, the OSC
surface) makes: which engine and instruments are playing, in which mood,
at what settings.  Switching an engine or instrument tears the old
generator down through its normal stop/dispose path and builds a fresh
one, so nothing is ever carried over between strategies.

Every generator takes its MIDI channels from one :class:`ChannelPool`
shared through :class:`Destinations`.  A replaced generator keeps its
channels until its grace window is over, so its release tail never
shares a channel with whatever replaced it.
"""

import dataclasses
import logging
import random
import typing

import murmur.ambient
import murmur.clock
import murmur.engines
import murmur.environments
import murmur.graph
import murmur.instruments
import murmur.lifecycle
import murmur.melodic
import murmur.moods
import murmur.timers


logger = logging.getLogger(__name__)


# General MIDI keeps the tenth channel (index 9) for drums.
POOL_CHANNELS = tuple(channel for channel in range(16) if channel != 9)

DEFAULT_CYCLE_MINUTES = 10.0

MAX_SLOTS = 3

# Each melody slot after the first is quieter, wetter, sparser and rests
# longer between phrases than the one before it.
SLOT_VOLUME_STEP = -2.0
SLOT_REVERB_STEP = 0.1
SLOT_REST = 2.0


class _Owner (typing.Protocol):

	@property
	def state (self) -> murmur.lifecycle.State:
		...


@dataclasses.dataclass
class _Claim:

	channels: typing.List[int]
	owner: typing.Optional[typing.Any] = None
	retired: bool = False


class ChannelPool:

	"""
	Hands out MIDI channels to generators and takes them back once retired.

	A retired generator keeps its channels until it has finalized.  When a
	claim finds too few channels free, the generator retired longest ago
	is finalized early to make room.

	Example:
		```python
		channels = pool.claim(engine.CHANNELS)
		scheduler = AmbientScheduler(engine, loop, channels=channels)
		pool.bind(channels, scheduler)
		...
		scheduler.stop()
		pool.retire(scheduler)
		```
	"""

	def __init__ (self, channels: typing.Sequence[int] = POOL_CHANNELS) -> None:

		self.channels = list(channels)
		self._claims: typing.List[_Claim] = []

	def free (self) -> typing.List[int]:

		"""Channels nobody holds, in pool order."""

		self._reclaim()
		held = {channel for claim in self._claims for channel in claim.channels}

		return [channel for channel in self.channels if channel not in held]

	def claim (self, count: int) -> typing.List[int]:

		"""Reserve ``count`` channels.  Pass them to ``bind()`` once their generator exists."""

		if count > len(self.channels):
			raise ValueError(f"Asked for {count} MIDI channels, the pool only has {len(self.channels)}")

		free = self.free()

		while len(free) < count:

			victim = next((claim for claim in self._claims if claim.retired), None)

			if victim is None:
				raise RuntimeError(f"No free MIDI channels: {count} needed, {len(free)} free")

			logger.debug(f"Finalizing a retiring generator early to free channels {victim.channels}")

			murmur.lifecycle.release(victim.owner, "finalize_now", "dispose", label="retiring generator")
			self._claims.remove(victim)
			free = self.free()

		taken = free[:count]
		self._claims.append(_Claim(taken))

		return list(taken)

	def bind (self, channels: typing.Sequence[int], owner: _Owner) -> None:

		for claim in self._claims:
			if claim.owner is None and claim.channels == list(channels):
				claim.owner = owner
				return

		raise ValueError(f"Channels {list(channels)} were never claimed")

	def retire (self, owner: _Owner) -> None:

		"""Mark ``owner``'s channels for return once it has finalized."""

		for claim in self._claims:
			if claim.owner is owner:
				claim.retired = True

		self._reclaim()

	def _reclaim (self) -> None:

		live = (murmur.lifecycle.State.ACTIVE, murmur.lifecycle.State.QUIESCING)

		self._claims = [
			claim for claim in self._claims
			if not (claim.retired and claim.owner.state not in live)
		]


@dataclasses.dataclass
class Destinations:

	"""The shared output nodes and channel pool every generator uses but none owns."""

	master_volume: murmur.graph.Node
	global_reverb: typing.Optional[murmur.graph.Node] = None
	global_delay: typing.Optional[murmur.graph.Node] = None
	global_filter: typing.Optional[murmur.graph.Node] = None
	channels: ChannelPool = dataclasses.field(default_factory=ChannelPool)


def build_destinations (port: typing.Any, reverb_amount: float = 0.5, volume: float = 0.8) -> Destinations:

	"""Create the master output and global buses on a MIDI port.

	The global delay and filter both feed the global reverb, which feeds the
	master output.
	"""

	master = murmur.graph.MasterOutput(port, volume=volume)
	reverb = murmur.graph.Reverb(decay=10.0, wet=reverb_amount, name="global reverb").connect(master)
	delay = murmur.graph.Delay(delay_time=0.375, feedback=0.3, wet=0.2, name="global delay").connect(reverb)
	global_filter = murmur.graph.Filter(frequency=2000.0, type="lowpass", q=1.0, name="global filter").connect(reverb)

	return Destinations(master_volume=master, global_reverb=reverb, global_delay=delay, global_filter=global_filter)


def _scheduler (
	engine: murmur.ambient.Engine,
	clock: murmur.clock.Clock,
	destinations: Destinations,
	rng: random.Random,
	config: typing.Optional[murmur.ambient.AmbientConfig] = None
) -> murmur.ambient.AmbientScheduler:

	"""A scheduler for ``engine`` on freshly claimed channels, bound to the shared outputs."""

	channels = destinations.channels.claim(engine.CHANNELS)
	scheduler = murmur.ambient.AmbientScheduler(engine, clock, rng=rng, config=config, channels=channels)
	destinations.channels.bind(channels, scheduler)

	scheduler.initialize(
		destinations.master_volume,
		destinations.global_reverb,
		destinations.global_delay,
		destinations.global_filter
	)

	return scheduler


def _retire_scheduler (scheduler: murmur.ambient.AmbientScheduler, destinations: Destinations) -> None:

	"""Wind a scheduler down (through its grace window if it was playing) and give back its channels."""

	if scheduler.active:
		scheduler.stop()
	elif scheduler.state is not murmur.lifecycle.State.QUIESCING:
		scheduler.dispose()

	destinations.channels.retire(scheduler)


class AmbientMusicManager:

	"""
	Chooses the ambient engine and mood, and keeps one scheduler playing them.

	Example:
		```python
		ambient = murmur.manager.AmbientMusicManager(loop, destinations)
		ambient.set_engine("cosmic_drift")
		ambient.set_mood("dreamy")
		ambient.start()
		```
	"""

	def __init__ (
		self,
		clock: murmur.clock.Clock,
		destinations: Destinations,
		rng: typing.Optional[random.Random] = None,
		registry: typing.Optional[murmur.engines.EngineRegistry] = None,
		config: typing.Optional[murmur.ambient.AmbientConfig] = None,
		on_mood: typing.Optional[typing.Callable[[str], None]] = None
	) -> None:

		"""
		Parameters:
			clock: Clock shared with every scheduler this manager creates.
			destinations: Shared output nodes and channel pool.
			rng: Random source shared with the schedulers.
			registry: Engines to choose from (the built-ins by default).
			config: Initial density and reverb.
			on_mood: Called with the mood key after every mood change.
		"""

		self.clock = clock
		self.destinations = destinations
		self.rng = rng or random.Random()
		self.registry = registry or murmur.engines.default_registry()
		self.config = config or murmur.ambient.AmbientConfig()
		self.on_mood = on_mood

		self.scheduler: typing.Optional[murmur.ambient.AmbientScheduler] = None
		self.engine_key: typing.Optional[str] = None
		self.mood = "calm"
		self.playing = False

		self._timers = murmur.timers.TimerSet(clock)

	def set_engine (self, key: str) -> murmur.ambient.AmbientScheduler:

		"""Replace the current engine, carrying over mood, settings and play state."""

		engine = self.registry.create(key)

		if self.scheduler is not None:
			_retire_scheduler(self.scheduler, self.destinations)

		scheduler = _scheduler(engine, self.clock, self.destinations, self.rng, dataclasses.replace(self.config))
		scheduler.set_scale(murmur.moods.get_mood(self.mood).scale())

		self.scheduler = scheduler
		self.engine_key = key

		if self.playing:
			scheduler.start()

		logger.info(f"Sound engine: {engine.name}")

		return scheduler

	def set_mood (self, key: str) -> None:

		mood = murmur.moods.get_mood(key)
		self.mood = key

		if self.scheduler is not None:
			self.scheduler.set_scale(mood.scale())

		logger.info(f"Mood: {key}")

		if self.on_mood is not None:
			self.on_mood(key)

	def start (self) -> None:

		if self.scheduler is None:
			raise RuntimeError("No sound engine selected")

		self.playing = True
		self.scheduler.start()

	def stop (self) -> None:

		self.playing = False
		self._timers.cancel_all()

		if self.scheduler is not None:
			self.scheduler.stop()

	def dispose (self) -> None:

		self.stop()

		if self.scheduler is not None:
			self.scheduler.dispose()
			self.destinations.channels.retire(self.scheduler)

	def update_config (self, density: typing.Optional[float] = None, reverb_amount: typing.Optional[float] = None) -> None:

		if density is not None:
			self.config.density = density

			if self.scheduler is not None:
				self.scheduler.update_density(density)

		if reverb_amount is not None:
			self.config.reverb_amount = reverb_amount

			if self.scheduler is not None:
				self.scheduler.update_reverb(reverb_amount)

	def available_engines (self) -> typing.List[typing.Dict[str, typing.Any]]:
		return [self.registry.info(key) for key in self.registry.available()]

	def available_moods (self) -> typing.List[str]:
		return sorted(murmur.moods.MOODS)

	def start_random_mood_cycle (self, minutes: float = DEFAULT_CYCLE_MINUTES) -> None:

		"""Switch to a random mood every ``minutes`` while playing."""

		self._timers.cancel_all()
		self._timers.arm(minutes * 60.0, lambda: self._cycle_mood(minutes))

	def _cycle_mood (self, minutes: float) -> None:

		if not self.playing:
			return

		self.change_to_random_mood()
		self._timers.arm(minutes * 60.0, lambda: self._cycle_mood(minutes))

	def change_to_random_mood (self) -> str:

		key = self.rng.choice(self.available_moods())
		self.set_mood(key)

		return key


@dataclasses.dataclass
class MelodySlot:

	"""One melody line: its position, instrument and generator."""

	index: int
	instrument_key: typing.Optional[str] = None
	generator: typing.Optional[murmur.melodic.MelodicGenerator] = None


class MelodyManager:

	"""
	Chooses the melodic instruments and keeps one generator per slot playing.

	With one slot (the default) a single instrument plays.  Up to
	``MAX_SLOTS`` slots play independent lines at once, each with its own
	generator, phrase timer and channel.  Slot ``i`` sits ``i`` steps below
	the first in volume and frequency and above it in reverb, and waits
	``i * SLOT_REST`` extra seconds before each phrase, so the lines
	stagger and thin out instead of playing in lockstep.

	Volume, reverb and frequency set on the manager are the first slot's;
	the other slots follow with their offsets.

	Example:
		```python
		melody = murmur.manager.MelodyManager(loop, destinations, frequency=5, slots=2)
		melody.set_instrument("harp")
		melody.set_slot_instrument(1, "vintage_celesta")
		melody.start(mood.scale(), mood.pattern())
		```
	"""

	def __init__ (
		self,
		clock: murmur.clock.Clock,
		destinations: Destinations,
		rng: typing.Optional[random.Random] = None,
		registry: typing.Optional[murmur.instruments.InstrumentRegistry] = None,
		frequency: typing.Optional[float] = None,
		config: typing.Optional[murmur.melodic.MelodicConfig] = None,
		slots: int = 1
	) -> None:

		self.clock = clock
		self.destinations = destinations
		self.rng = rng or random.Random()
		self.registry = registry or murmur.instruments.default_registry()
		self.frequency = frequency
		self.config = config or murmur.melodic.MelodicConfig()

		self.slots = [MelodySlot(i) for i in range(_clamp_slots(slots))]
		self.enabled = True
		self.playing = False
		self.scale: typing.List[str] = []
		self.pattern: typing.List[str] = []

		self._timers = murmur.timers.TimerSet(clock)

	@property
	def generator (self) -> typing.Optional[murmur.melodic.MelodicGenerator]:

		"""The first slot's generator."""

		return self.slots[0].generator

	@property
	def instrument_key (self) -> typing.Optional[str]:
		return self.slots[0].instrument_key

	@property
	def generators (self) -> typing.List[murmur.melodic.MelodicGenerator]:
		return [slot.generator for slot in self.slots if slot.generator is not None]

	@property
	def slot_count (self) -> int:
		return len(self.slots)

	def _slot_config (self, index: int) -> murmur.melodic.MelodicConfig:

		return murmur.melodic.MelodicConfig(
			volume=self.config.volume + SLOT_VOLUME_STEP * index,
			reverb_amount=min(1.0, self.config.reverb_amount + SLOT_REVERB_STEP * index)
		)

	def _slot_frequency (self, index: int) -> typing.Optional[float]:

		if index == 0:
			return self.frequency

		base = murmur.melodic.DEFAULT_FREQUENCY if self.frequency is None else self.frequency

		return max(murmur.melodic.MIN_FREQUENCY, base - index)

	def _retire (self, slot: MelodySlot) -> None:

		if slot.generator is None:
			return

		slot.generator.dispose()
		self.destinations.channels.retire(slot.generator)

	def set_slot_instrument (self, index: int, key: str) -> murmur.melodic.MelodicGenerator:

		"""Dispose slot ``index``'s instrument and start the new one there if playing."""

		if not 0 <= index < len(self.slots):
			raise IndexError(f"No melody slot {index} (have {len(self.slots)})")

		instrument = self.registry.create(key)
		slot = self.slots[index]

		self._retire(slot)

		pool = self.destinations.channels
		(channel,) = pool.claim(1)

		generator = murmur.melodic.MelodicGenerator(
			instrument,
			self.clock,
			rng=self.rng,
			frequency=self._slot_frequency(index),
			config=self._slot_config(index),
			channel=channel,
			rest=SLOT_REST * index
		)

		pool.bind([channel], generator)
		generator.initialize(self.destinations.master_volume, self.destinations.global_reverb)

		slot.generator = generator
		slot.instrument_key = key

		if self.playing and self.enabled:
			generator.start(self.scale, self.pattern)

		logger.info(f"Melodic instrument (slot {index + 1}): {instrument.name}")

		return generator

	def set_instrument (self, key: str) -> murmur.melodic.MelodicGenerator:

		"""Put instrument ``key`` in every slot.  Returns the first slot's generator."""

		if key not in self.registry:
			raise KeyError(f"Unknown instrument {key!r}. Available: {self.registry.available()}")

		for slot in self.slots:
			self.set_slot_instrument(slot.index, key)

		return self.slots[0].generator

	def set_slot_count (self, count: int) -> int:

		"""Play ``count`` lines (clamped to 1..``MAX_SLOTS``).

		Existing slots keep playing untouched.  New slots take the first
		slot's instrument and join straight away if the melody is playing;
		removed slots wind down through their grace window.

		Returns:
			The slot count actually applied.
		"""

		count = _clamp_slots(count)

		while len(self.slots) > count:
			self._retire(self.slots.pop())

		while len(self.slots) < count:

			slot = MelodySlot(len(self.slots))
			self.slots.append(slot)

			if self.instrument_key is not None:
				self.set_slot_instrument(slot.index, self.instrument_key)

		logger.info(f"Melody slots: {count}")

		return count

	def randomize_slot_instruments (self, count: typing.Optional[int] = None) -> typing.Dict[int, str]:

		"""Give ``count`` randomly chosen slots (all when omitted) a different random instrument.

		Returns:
			The new instrument key for each slot that changed.
		"""

		chosen = self.slots if count is None else self.rng.sample(self.slots, min(count, len(self.slots)))
		available = self.registry.available()
		changed: typing.Dict[int, str] = {}

		for slot in sorted(chosen, key=lambda s: s.index):

			choices = [key for key in available if key != slot.instrument_key] or available
			key = self.rng.choice(choices)

			self.set_slot_instrument(slot.index, key)
			changed[slot.index] = key

		return changed

	def set_enabled (self, enabled: bool) -> None:

		self.enabled = enabled

		for generator in self.generators:

			if not enabled:
				generator.stop()

			elif self.playing:
				generator.start(self.scale, self.pattern)

	def start (self, scale: typing.Sequence[str], pattern: typing.Sequence[str]) -> None:

		self.scale = list(scale)
		self.pattern = list(pattern)
		self.playing = True

		if not self.enabled:
			return

		for generator in self.generators:
			generator.start(self.scale, self.pattern)

	def stop (self) -> None:

		self.playing = False
		self._timers.cancel_all()

		for generator in self.generators:
			generator.stop()

	def dispose (self) -> None:

		self.stop()

		for slot in self.slots:
			self._retire(slot)

	def set_scale_and_pattern (self, scale: typing.Sequence[str], pattern: typing.Sequence[str]) -> None:

		self.scale = list(scale)
		self.pattern = list(pattern)

		for generator in self.generators:
			generator.set_scale(self.scale)
			generator.set_pattern(self.pattern)

	def set_frequency (self, frequency: typing.Optional[float]) -> None:

		self.frequency = frequency

		for slot in self.slots:
			if slot.generator is not None:
				slot.generator.set_frequency(self._slot_frequency(slot.index))

	def update_reverb_amount (self, value: float) -> None:

		self.config.reverb_amount = value

		for slot in self.slots:
			if slot.generator is not None:
				slot.generator.update_reverb_amount(self._slot_config(slot.index).reverb_amount)

	def set_volume (self, db: float) -> None:

		self.config.volume = db

		for slot in self.slots:
			if slot.generator is not None:
				slot.generator.set_volume(self._slot_config(slot.index).volume)

	def available_instruments (self) -> typing.List[typing.Dict[str, typing.Any]]:
		return [self.registry.info(key) for key in self.registry.available()]

	def start_random_cycle (self, minutes: float = DEFAULT_CYCLE_MINUTES) -> None:

		"""Change instruments every ``minutes`` while playing.

		A single slot switches to a different random instrument; with more
		slots one or two of them change each time.
		"""

		self._timers.cancel_all()
		self._timers.arm(minutes * 60.0, lambda: self._cycle(minutes))

	def _cycle (self, minutes: float) -> None:

		if not self.playing:
			return

		if len(self.slots) == 1:
			self.change_to_random_instrument()
		else:
			self.randomize_slot_instruments(self.rng.randint(1, 2))

		self._timers.arm(minutes * 60.0, lambda: self._cycle(minutes))

	def change_to_random_instrument (self) -> str:

		"""Put one random instrument, never the current one (unless it is the only one), in every slot."""

		available = self.registry.available()
		choices = [key for key in available if key != self.instrument_key] or available

		key = self.rng.choice(choices)
		self.set_instrument(key)

		return key


def _clamp_slots (count: int) -> int:
	return max(1, min(MAX_SLOTS, int(count)))


class EnvironmentManager:

	"""
	Switches environmental layers (waves, storm, clock) on and off.

	Any number of layers can play at once, each on its own scheduler and
	channels, independent of the ambient engine and the melody.

	Example:
		```python
		layers = murmur.manager.EnvironmentManager(loop, destinations)
		layers.enable("thunderstorm")
		```
	"""

	def __init__ (
		self,
		clock: murmur.clock.Clock,
		destinations: Destinations,
		rng: typing.Optional[random.Random] = None,
		registry: typing.Optional[murmur.environments.EnvironmentRegistry] = None
	) -> None:

		self.clock = clock
		self.destinations = destinations
		self.rng = rng or random.Random()
		self.registry = registry or murmur.environments.default_registry()

		self.layers: typing.Dict[str, murmur.ambient.AmbientScheduler] = {}

	@property
	def active_layers (self) -> typing.List[str]:
		return sorted(key for key, scheduler in self.layers.items() if scheduler.active)

	def enable (self, key: str) -> murmur.ambient.AmbientScheduler:

		"""Start layer ``key`` (a no-op if it is already playing)."""

		scheduler = self.layers.get(key)

		if scheduler is None:
			scheduler = _scheduler(self.registry.create(key), self.clock, self.destinations, self.rng)
			self.layers[key] = scheduler

		scheduler.start()

		return scheduler

	def disable (self, key: str) -> None:

		"""Stop layer ``key``; its sounds ring out and its rig is freed after the grace window."""

		scheduler = self.layers.pop(key, None)

		if scheduler is None:
			return

		_retire_scheduler(scheduler, self.destinations)
		logger.info(f"Layer off: {scheduler.engine.name}")

	def set_enabled (self, key: str, enabled: bool) -> None:

		if key not in self.registry:
			raise KeyError(f"Unknown layer {key!r}. Available: {self.registry.available()}")

		if enabled:
			self.enable(key)
		else:
			self.disable(key)

	def stop (self) -> None:

		for key in list(self.layers):
			self.disable(key)

	def dispose (self) -> None:

		for scheduler in self.layers.values():
			scheduler.dispose()
			self.destinations.channels.retire(scheduler)

		self.layers.clear()

	def available_layers (self) -> typing.List[typing.Dict[str, typing.Any]]:
		return [self.registry.info(key) for key in self.registry.available()]
