"""Melodic instruments.

An instrument is a phrase-rendering strategy for
:class:`murmur.melodic.MelodicGenerator`.  It does two things:

- ``build(generator)`` allocates the generator's voice and effect chain
  (synth → ping-pong delay → reverb → master output) and returns the
  :class:`murmur.lifecycle.Rig` that owns them.
- ``render(generator, phrase)`` schedules each note of a phrase on that
  voice.  Notes are handed to the voice with a start delay, so rendering
  returns immediately and never blocks the event loop.

Each instrument differs in its General MIDI program and in how it spaces
and sustains notes: evenly (:class:`Instrument`), in loose wind-blown
clusters (:class:`ClusterInstrument`) or with occasional octave leaps
(:class:`OctaveDriftInstrument`).
"""

import dataclasses
import logging
import typing

import murmur.graph
import murmur.lifecycle
import murmur.notes
import murmur.registry
import murmur.sequence_utils

if typing.TYPE_CHECKING:
	from murmur.melodic import MelodicGenerator


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Instrument:

	"""An instrument that plays phrase notes at an even pace.

	Note ``i`` starts at ``i * spacing`` seconds plus up to ``jitter``
	seconds of humanising drift, and sounds for ``note_duration`` seconds.
	"""

	name: str
	program: int
	note_duration: float
	spacing: float
	jitter: float = 0.2
	velocity: float = 0.7
	reverb_decay: float = 10.0
	delay_time: float = 0.25
	description: str = ""

	def build (self, generator: "MelodicGenerator") -> murmur.lifecycle.Rig:

		voice = murmur.graph.PolyVoice(
			generator.clock,
			channel=generator.channel,
			program=self.program,
			volume=generator.config.volume,
			velocity=self.velocity,
			name=self.name
		)

		delay = murmur.graph.Delay(delay_time=self.delay_time, feedback=0.3, wet=0.25, name=f"{self.name} delay")
		reverb = murmur.graph.Reverb(decay=self.reverb_decay, wet=generator.config.reverb_amount, name=f"{self.name} reverb")

		if generator.master_volume is not None:
			reverb.connect(generator.master_volume)
		else:
			logger.warning(f"{self.name}: no master output bound, notes will be dropped")

		delay.connect(reverb)
		voice.connect(delay)

		return murmur.lifecycle.Rig(voices={"synth": voice}, effects=[delay, reverb])

	def schedule (self, generator: "MelodicGenerator", phrase: typing.Sequence[str]) -> typing.List[typing.Tuple[str, float, float]]:

		"""Decide (note, start delay, duration) for every note of the phrase."""

		return [
			(note, i * self.spacing + generator.rng.random() * self.jitter, self.note_duration)
			for i, note in enumerate(phrase)
		]

	def render (self, generator: "MelodicGenerator", phrase: typing.Sequence[str]) -> None:

		voice = generator.voice

		if voice is None:
			return

		for note, delay, duration in self.schedule(generator, phrase):
			voice.trigger_attack_release(note, duration, delay=delay)


@dataclasses.dataclass
class ClusterInstrument (Instrument):

	"""Wind chimes: notes bunch up in gusts, then spread out again."""

	cluster_chance: float = 0.3
	cluster_factor: float = 0.3
	cluster_jitter: float = 0.5
	duration_jitter: float = 1.5

	def schedule (self, generator: "MelodicGenerator", phrase: typing.Sequence[str]) -> typing.List[typing.Tuple[str, float, float]]:

		rng = generator.rng
		events = []

		for i, note in enumerate(phrase):

			if i == 0:
				delay = rng.random() * 1.0

			elif rng.random() < self.cluster_chance:
				delay = i * self.spacing * self.cluster_factor + rng.random() * self.cluster_jitter

			else:
				delay = i * self.spacing + rng.random() * self.jitter

			events.append((note, delay, self.note_duration + rng.random() * self.duration_jitter))

		return events


@dataclasses.dataclass
class OctaveDriftInstrument (Instrument):

	"""Soft flute: the odd note leaps an octave, and some phrases run quicker.

	A note moves up an octave 15% of the time (only below octave 6) and
	down an octave 10% of the time (only above octave 2).
	"""

	fast_chance: float = 0.2
	fast_spacing: float = 0.4
	fast_duration: float = 0.8
	highest_octave: int = 6
	lowest_octave: int = 2

	def _drift (self, note: str, generator: "MelodicGenerator") -> str:

		shift = murmur.sequence_utils.weighted_choice([(1, 0.15), (-1, 0.10), (0, 0.75)], generator.rng)
		current = murmur.notes.octave(note)

		if shift > 0 and current < self.highest_octave:
			return murmur.notes.transpose_octave(note, 1)

		if shift < 0 and current > self.lowest_octave:
			return murmur.notes.transpose_octave(note, -1)

		return note

	def schedule (self, generator: "MelodicGenerator", phrase: typing.Sequence[str]) -> typing.List[typing.Tuple[str, float, float]]:

		rng = generator.rng

		if rng.random() < self.fast_chance:
			spacing, duration = self.fast_spacing, self.fast_duration
		else:
			spacing, duration = self.spacing, self.note_duration

		return [
			(self._drift(note, generator), i * spacing + rng.random() * self.jitter, duration)
			for i, note in enumerate(phrase)
		]


class InstrumentRegistry (murmur.registry.Registry[Instrument]):

	def __init__ (self) -> None:
		super().__init__("instrument")

	def info (self, key: str) -> typing.Dict[str, typing.Any]:

		details = super().info(key)
		details["program"] = self.create(key).program

		return details


def default_registry () -> InstrumentRegistry:

	"""A registry holding every built-in instrument."""

	registry = InstrumentRegistry()

	registry.register("piano", lambda: Instrument("Piano", program=0, note_duration=1.5, spacing=0.8, description="Soft acoustic piano"))
	registry.register("sampled_piano", lambda: Instrument("Sampled Piano", program=1, note_duration=2.0, spacing=1.0, reverb_decay=8.0, description="Bright piano with chorus and long tail"))
	registry.register("marimba", lambda: Instrument("Marimba", program=12, note_duration=0.5, spacing=0.6, velocity=0.6, description="Wooden mallet percussion"))
	registry.register("harp", lambda: Instrument("Harp", program=46, note_duration=1.0, spacing=0.7, description="Plucked orchestral harp"))
	registry.register("music_box", lambda: Instrument("Music Box", program=10, note_duration=0.3, spacing=0.4, velocity=0.5, description="Delicate music box"))
	registry.register("crystal_bells", lambda: Instrument("Crystal Bells", program=14, note_duration=2.5, spacing=1.2, jitter=0.3, reverb_decay=12.0, description="Shimmering tubular bells"))
	registry.register("warm_strings", lambda: Instrument("Warm Strings", program=49, note_duration=4.0, spacing=1.8, jitter=0.4, description="Slow string ensemble"))
	registry.register("ethereal_choir", lambda: Instrument("Ethereal Choir", program=52, note_duration=8.0, spacing=4.0, jitter=1.0, reverb_decay=15.0, description="Wordless choir pads"))
	registry.register("wind_chimes", lambda: ClusterInstrument("Wind Chimes", program=9, note_duration=0.8, spacing=0.8, jitter=1.5, velocity=0.5, reverb_decay=12.0, description="Metallic chimes in the breeze"))
	registry.register("glass_harmonics", lambda: Instrument("Glass Harmonics", program=92, note_duration=3.0, spacing=1.5, jitter=0.3, reverb_decay=12.0, description="Bowed glass tones"))
	registry.register("soft_flute", lambda: OctaveDriftInstrument("Soft Flute", program=73, note_duration=2.5, spacing=1.3, description="Breathy flute with octave leaps"))
	registry.register("vintage_celesta", lambda: Instrument("Vintage Celesta", program=8, note_duration=1.2, spacing=0.9, jitter=0.15, description="Celesta with a warm tape tone"))

	return registry
