"""Melodic phrase generator.

Every cycle the generator picks a seed pitch from the current pattern,
walks a few steps up and down the current scale from it and hands the
resulting phrase to its instrument to play.  Then it re-arms itself with a
delay derived from the melodic frequency, so phrases arrive forever at an
unhurried, irregular pace until the generator is stopped.
"""

import dataclasses
import logging
import random
import typing

import murmur.clock
import murmur.graph
import murmur.lifecycle
import murmur.sequence_utils

if typing.TYPE_CHECKING:
	from murmur.instruments import Instrument


logger = logging.getLogger(__name__)


# Seconds between dispose() and the voices being freed.
GRACE_WINDOW = 0.5

FIRST_PHRASE_DELAY = (10.0, 15.0)
PHRASE_LENGTH = (3, 7)
WALK_STEP = 2

DEFAULT_FREQUENCY = 5
MIN_FREQUENCY = 1
MAX_FREQUENCY = 10


@dataclasses.dataclass
class MelodicConfig:

	"""Per-instrument mix settings."""

	volume: float = -5.0
	reverb_amount: float = 0.5


def base_time (frequency: typing.Optional[float]) -> float:

	"""Seconds of guaranteed silence between phrases for a melodic frequency.

	``frequency`` runs from 1 (sparse) to 10 (busy); ``None`` means the
	default of 5 and out-of-range values are clamped.

	Example:
		```python
		base_time(10)    # → 6.0
		base_time(None)  # → 36.0
		```
	"""

	if frequency is None:
		frequency = DEFAULT_FREQUENCY

	frequency = max(MIN_FREQUENCY, min(MAX_FREQUENCY, frequency))

	return (11 - frequency) * 6.0


def phrase_delay (frequency: typing.Optional[float], rng: random.Random) -> float:

	"""Delay before the next phrase: the base time plus up to ten seconds."""

	return base_time(frequency) + rng.random() * 10.0


def generate_phrase (scale: typing.Sequence[str], pattern: typing.Sequence[str], rng: random.Random) -> typing.Optional[typing.List[str]]:

	"""Build one random-walk phrase.

	The phrase starts on a pitch drawn from ``pattern`` and moves by at most
	two scale steps at a time, staying inside the scale.

	Returns:
		Between three and seven pitch tokens, or ``None`` when the chosen
		seed pitch is not in ``scale`` (or there is nothing to choose from).
	"""

	if not scale or not pattern:
		return None

	length = rng.randint(*PHRASE_LENGTH)
	start = rng.choice(list(pattern))

	if start not in scale:
		return None

	walk = murmur.sequence_utils.random_walk(
		length,
		low=0,
		high=len(scale) - 1,
		step=WALK_STEP,
		rng=rng,
		start=list(scale).index(start)
	)

	return [scale[i] for i in walk]


class MelodicGenerator:

	"""
	Plays an endless series of short melodic phrases on one instrument.

	The generator owns its voice and effects (built by the instrument on
	the first ``start()``) and exactly one pending "next phrase" timer while
	active.

	Example:
		```python
		melody = murmur.melodic.MelodicGenerator(instruments.create("piano"), loop)
		melody.initialize(master, global_reverb)
		melody.start(mood.scale(), mood.pattern())
		```
	"""

	def __init__ (
		self,
		instrument: "Instrument",
		clock: murmur.clock.Clock,
		rng: typing.Optional[random.Random] = None,
		frequency: typing.Optional[float] = None,
		config: typing.Optional[MelodicConfig] = None,
		channel: int = 0,
		rest: float = 0.0
	) -> None:

		"""
		Parameters:
			instrument: Strategy that builds the voice and renders phrases.
			clock: Anything with ``time()`` and ``call_later()``.
			rng: Random source (a fresh ``random.Random`` when omitted).
			frequency: Melodic frequency, 1–10 (``None`` → 5).
			config: Volume and reverb settings.
			channel: MIDI channel for the instrument's voice.
			rest: Extra seconds of silence before every phrase, the first included.
		"""

		self.instrument = instrument
		self.clock = clock
		self.rng = rng or random.Random()
		self.frequency = frequency
		self.config = config or MelodicConfig()
		self.channel = channel
		self.rest = rest

		self.lifecycle = murmur.lifecycle.Lifecycle(clock, f"melody:{instrument.name}", GRACE_WINDOW)
		self.rig: typing.Optional[murmur.lifecycle.Rig] = None

		self.master_volume: typing.Optional[murmur.graph.Node] = None
		self.global_reverb: typing.Optional[murmur.graph.Node] = None

		self.scale: typing.List[str] = []
		self.pattern: typing.List[str] = []

		self._next_phrase: typing.Optional[int] = None

	@property
	def state (self) -> murmur.lifecycle.State:
		return self.lifecycle.state

	@property
	def active (self) -> bool:
		return self.lifecycle.active

	@property
	def voice (self) -> typing.Any:

		if self.rig is None:
			return None

		return self.rig.voices.get("synth")

	@property
	def reverb (self) -> typing.Any:

		if self.rig is None:
			return None

		return next((e for e in self.rig.effects if murmur.graph.is_reverb(e)), None)

	def initialize (self, master_volume: murmur.graph.Node, global_reverb: typing.Optional[murmur.graph.Node] = None) -> None:

		"""Bind the shared output destinations.  Nothing is allocated here."""

		self.master_volume = master_volume
		self.global_reverb = global_reverb

	def start (self, scale: typing.Sequence[str], pattern: typing.Sequence[str]) -> None:

		if self.lifecycle.active:
			return

		if self.rig is None:
			self.rig = self.instrument.build(self)

		self.scale = list(scale)
		self.pattern = list(pattern)

		self.lifecycle.activate()
		self._arm(self.rng.uniform(*FIRST_PHRASE_DELAY) + self.rest)

		logger.info(f"Melody started: {self.instrument.name}")

	def stop (self) -> None:

		"""Cancel the pending phrase and let sounding notes ring out."""

		if not self.lifecycle.deactivate():
			return

		self._next_phrase = None

		if self.voice is not None:
			murmur.lifecycle.release(self.voice, "release_all", "trigger_release", label=f"{self.instrument.name} voice")

		logger.info(f"Melody stopped: {self.instrument.name}")

	def dispose (self) -> None:

		"""Stop, then free the voice and effects after the grace window."""

		self.stop()
		self.lifecycle.quiesce(self._finalize)

	def finalize_now (self) -> None:

		"""Stop and free the voice and effects at once, skipping the grace window."""

		if self.lifecycle.state is murmur.lifecycle.State.FINALIZED:
			return

		self.stop()
		self.lifecycle.finalize_now(self._finalize)

	def _finalize (self) -> None:

		if self.rig is not None:
			self.rig.dispose()
			self.rig = None

	def set_scale (self, scale: typing.Sequence[str]) -> None:
		self.scale = list(scale)

	def set_pattern (self, pattern: typing.Sequence[str]) -> None:
		self.pattern = list(pattern)

	def set_frequency (self, frequency: typing.Optional[float]) -> None:
		self.frequency = frequency

	def update_reverb_amount (self, value: float) -> None:

		self.config.reverb_amount = value

		if self.reverb is not None:
			self.reverb.wet.value = value

	def set_volume (self, db: float) -> None:

		self.config.volume = db

		volume = getattr(self.voice, "volume", None)

		if volume is not None:
			volume.value = db

	def _arm (self, delay: float) -> None:

		if self._next_phrase is not None:
			self.lifecycle.timers.cancel(self._next_phrase)

		self._next_phrase = self.lifecycle.timers.arm(delay, self._play_phrase)

	def _play_phrase (self) -> None:

		self._next_phrase = None

		if not self.lifecycle.active:
			return

		phrase = generate_phrase(self.scale, self.pattern, self.rng)

		if phrase is None:
			logger.debug(f"{self.instrument.name}: seed pitch not in scale, skipping this phrase")

		else:
			try:
				self.instrument.render(self, phrase)
			except Exception:
				logger.exception(f"Error rendering phrase on {self.instrument.name} - phrase will be silent this cycle")

		if self.lifecycle.active:
			self._arm(phrase_delay(self.frequency, self.rng) + self.rest)
