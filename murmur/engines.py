"""Ambient engines.

An engine decides what an :class:`murmur.ambient.AmbientScheduler` plays.
Three families cover the built-in sounds:

- :class:`StandardEngine` layers two pads, high chimes and a low bass
  line, all routed through the shared global filter.
- :class:`PadEngine` plays one stream of slow chords through its own
  effect chain (filter, gain, chorus, reverb) with optional LFO movement
  and an occasional sub-bass note.
- :class:`DroneEngine` holds the scale root on a monophonic drone and
  drifts harmonic chords over it.
"""

import dataclasses
import logging
import typing

import murmur.ambient
import murmur.graph
import murmur.lifecycle
import murmur.notes
import murmur.registry

if typing.TYPE_CHECKING:
	from murmur.ambient import AmbientScheduler


logger = logging.getLogger(__name__)

Range = typing.Tuple[float, float]

# Seconds between releasing a drone and sounding it on a new root.
DRONE_RETUNE_DELAY = 0.5


def _density (scheduler: "AmbientScheduler") -> float:
	return max(1.0, min(10.0, scheduler.config.density))


def _span (scheduler: "AmbientScheduler", span: Range) -> float:
	return span[0] + scheduler.rng.random() * (span[1] - span[0])


def output_for (scheduler: "AmbientScheduler") -> typing.Optional[murmur.graph.Node]:

	"""Where an engine's last node should connect: the master output."""

	if scheduler.master_volume is None:
		logger.warning(f"{scheduler.engine.name}: no master output bound, notes will be dropped")

	return scheduler.master_volume


class StandardEngine (murmur.ambient.Engine):

	"""
	Four layered streams over the shared global filter.

	Two pads play one to three note chords (the second pad joins after five
	seconds), chimes pick notes from octave 4 and up, and the bass plays
	notes from octave 3 and below.  Pad and chime spacing shrink as density
	rises.
	"""

	name = "Standard Ambient"
	description = "Layered pads, chimes and bass"

	PAD_PROGRAM = 88
	CHIME_PROGRAM = 14
	BASS_PROGRAM = 38

	CHIME_CHANCE = 0.75
	CHIME_DURATION = 0.125

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		clock = scheduler.clock

		voices = {
			"pad1": murmur.graph.PolyVoice(clock, scheduler.channel(0), program=self.PAD_PROGRAM, volume=-8.0, name="pad1"),
			"pad2": murmur.graph.PolyVoice(clock, scheduler.channel(1), program=self.PAD_PROGRAM, volume=-10.0, name="pad2"),
			"chimes": murmur.graph.PolyVoice(clock, scheduler.channel(2), program=self.CHIME_PROGRAM, volume=-15.0, name="chimes"),
			"bass": murmur.graph.MonoVoice(clock, scheduler.channel(3), program=self.BASS_PROGRAM, volume=-5.0, name="bass"),
		}

		destination = scheduler.global_filter or output_for(scheduler)

		if destination is not None:
			for voice in voices.values():
				voice.connect(destination)

		return murmur.lifecycle.Rig(voices=voices)

	def initiate (self, scheduler: "AmbientScheduler") -> None:

		self.play_pad(scheduler, "pad1")
		scheduler.schedule_next(lambda: self.play_pad(scheduler, "pad2"), 5.0, 5.0)
		scheduler.schedule_next(lambda: self.play_chime(scheduler), 8.0, 8.0)
		scheduler.schedule_next(lambda: self.play_bass(scheduler), 2.0, 2.0)

	def play_pad (self, scheduler: "AmbientScheduler", name: str) -> None:

		chord = scheduler.get_random_chord(scheduler.rng.randint(1, 3))
		scheduler.voice(name).trigger_attack_release(chord, _span(scheduler, (8.0, 18.0)))

		wait = 11 - _density(scheduler)
		scheduler.schedule_next(lambda: self.play_pad(scheduler, name), wait, wait + 3.0)

	def play_chime (self, scheduler: "AmbientScheduler") -> None:

		if scheduler.rng.random() < self.CHIME_CHANCE:

			high = [n for n in scheduler.scale if murmur.notes.octave(n) >= 4]

			if high:
				scheduler.voice("chimes").trigger_attack_release(scheduler.rng.choice(high), self.CHIME_DURATION)

		wait = (11 - _density(scheduler)) * 1.5
		scheduler.schedule_next(lambda: self.play_chime(scheduler), wait, wait + 4.0)

	def play_bass (self, scheduler: "AmbientScheduler") -> None:

		low = [n for n in scheduler.scale if murmur.notes.octave(n) <= 3]

		if low:
			scheduler.voice("bass").trigger_attack_release(scheduler.rng.choice(low), _span(scheduler, (4.0, 10.0)))

		scheduler.schedule_next(lambda: self.play_bass(scheduler), 10.0, 20.0)


@dataclasses.dataclass
class LfoSpec:

	"""A slow LFO sweeping one parameter: ``"filter"`` cutoff or ``"gain"``."""

	target: str
	frequency: float
	min_val: float
	max_val: float
	shape: str = "sine"


@dataclasses.dataclass
class PadEngine (murmur.ambient.Engine):

	"""
	One stream of slow chords through a configurable effect chain.

	The chain is pad → filter → gain → chorus → reverb → master, with each
	stage optional except the reverb.
	"""

	CHANNELS = 2

	name: str
	chord_size: int
	duration: Range
	interval: Range
	program: int = 89
	volume: float = -8.0
	reverb_decay: float = 12.0
	room_size: float = 0.85
	chorus: typing.Optional[typing.Tuple[float, float, float]] = None
	filter: typing.Optional[typing.Tuple[float, str, float]] = None
	gain: typing.Optional[float] = None
	lfos: typing.Tuple[LfoSpec, ...] = ()
	sub_bass_chance: float = 0.0
	sub_bass_duration: Range = (8.0, 20.0)
	description: str = ""

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		clock = scheduler.clock
		pad = murmur.graph.PolyVoice(clock, scheduler.channel(0), program=self.program, volume=self.volume, name=f"{self.name} pad")
		rig = murmur.lifecycle.Rig(voices={"pad": pad})
		stages: typing.Dict[str, murmur.graph.Node] = {}

		if self.filter is not None:
			frequency, kind, q = self.filter
			stages["filter"] = murmur.graph.Filter(frequency=frequency, type=kind, q=q, name=f"{self.name} filter")

		if self.gain is not None:
			stages["gain"] = murmur.graph.Gain(self.gain, name=f"{self.name} gain")

		if self.chorus is not None:
			frequency, delay_time, depth = self.chorus
			stages["chorus"] = murmur.graph.Chorus(frequency=frequency, delay_time=delay_time, depth=depth, name=f"{self.name} chorus")

		reverb = murmur.graph.Reverb(decay=self.reverb_decay, room_size=self.room_size, wet=scheduler.config.reverb_amount, name=f"{self.name} reverb")
		chain = list(stages.values()) + [reverb]

		output = output_for(scheduler)

		if output is not None:
			reverb.connect(output)

		for upstream, downstream in reversed(list(zip(chain, chain[1:]))):
			upstream.connect(downstream)

		pad.connect(chain[0])

		if self.sub_bass_chance > 0:
			sub_bass = murmur.graph.MonoVoice(clock, scheduler.channel(1), program=38, volume=-6.0, name=f"{self.name} sub bass")
			sub_bass.connect(reverb)
			rig.voices["sub_bass"] = sub_bass

		for spec in self.lfos:

			if spec.target not in stages:
				raise ValueError(f"{self.name}: LFO target {spec.target!r} has no stage")

			stage = stages[spec.target]
			param = stage.frequency if spec.target == "filter" else stage.gain

			lfo = murmur.graph.LFO(clock, frequency=spec.frequency, min_val=spec.min_val, max_val=spec.max_val, shape=spec.shape, name=f"{self.name} {spec.target} lfo")
			rig.modulators.append(lfo.connect(param))

		rig.effects.extend(chain)

		return rig

	def initiate (self, scheduler: "AmbientScheduler") -> None:

		for lfo in scheduler.rig.modulators:
			lfo.start()

		self.play(scheduler)

	def play (self, scheduler: "AmbientScheduler") -> None:

		scheduler.voice("pad").trigger_attack_release(scheduler.get_random_chord(self.chord_size), _span(scheduler, self.duration))

		if self.sub_bass_chance > 0 and scheduler.scale and scheduler.rng.random() < self.sub_bass_chance:
			note = scheduler.scale[scheduler.rng.randrange(min(3, len(scheduler.scale)))]
			scheduler.voice("sub_bass").trigger_attack_release(note, _span(scheduler, self.sub_bass_duration))

		scheduler.schedule_next(lambda: self.play(scheduler), *self.interval)


@dataclasses.dataclass
class DroneEngine (murmur.ambient.Engine):

	"""
	A drone held on the scale root, with harmonic chords drifting above.

	When the scale changes the drone is released and, half a second later,
	sounds again on the new root.
	"""

	CHANNELS = 2

	name: str
	chord_size: int
	duration: Range
	interval: Range
	filter: typing.Tuple[float, str, float]
	drone_program: int = 95
	harmonic_program: int = 91
	reverb_decay: float = 22.0
	room_size: float = 0.95
	description: str = ""

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		clock = scheduler.clock

		drone = murmur.graph.MonoVoice(clock, scheduler.channel(0), program=self.drone_program, volume=-6.0, name=f"{self.name} drone")
		harmonics = murmur.graph.PolyVoice(clock, scheduler.channel(1), program=self.harmonic_program, volume=-12.0, name=f"{self.name} harmonics")

		frequency, kind, q = self.filter
		drone_filter = murmur.graph.Filter(frequency=frequency, type=kind, q=q, name=f"{self.name} filter")
		reverb = murmur.graph.Reverb(decay=self.reverb_decay, room_size=self.room_size, wet=scheduler.config.reverb_amount, name=f"{self.name} reverb")

		output = output_for(scheduler)

		if output is not None:
			reverb.connect(output)

		drone_filter.connect(reverb)
		drone.connect(drone_filter)
		harmonics.connect(reverb)

		return murmur.lifecycle.Rig(voices={"drone": drone, "harmonics": harmonics}, effects=[drone_filter, reverb])

	def initiate (self, scheduler: "AmbientScheduler") -> None:

		if scheduler.scale:
			scheduler.voice("drone").trigger_attack(scheduler.scale[0])

		self.play(scheduler)

	def play (self, scheduler: "AmbientScheduler") -> None:

		scheduler.voice("harmonics").trigger_attack_release(scheduler.get_random_chord(self.chord_size), _span(scheduler, self.duration))
		scheduler.schedule_next(lambda: self.play(scheduler), *self.interval)

	def on_scale_change (self, scheduler: "AmbientScheduler", scale: typing.List[str]) -> None:

		if not scale:
			return

		drone = scheduler.voice("drone")
		drone.trigger_release()

		root = scale[0]
		scheduler.schedule_next(lambda: drone.trigger_attack(root), DRONE_RETUNE_DELAY, DRONE_RETUNE_DELAY)

	def on_stop (self, scheduler: "AmbientScheduler") -> None:
		murmur.lifecycle.release(scheduler.voice("drone"), "trigger_release", label=f"{self.name} drone")


class EngineRegistry (murmur.registry.Registry[murmur.ambient.Engine]):

	def __init__ (self) -> None:
		super().__init__("engine")


def default_registry () -> EngineRegistry:

	"""A registry holding every built-in engine."""

	registry = EngineRegistry()

	registry.register("standard", StandardEngine)

	registry.register("cosmic_drift", lambda: PadEngine(
		"Cosmic Drift", chord_size=3, duration=(6.0, 14.0), interval=(4.0, 8.0), program=90,
		reverb_decay=15.0, room_size=0.9, chorus=(0.2, 4.0, 0.8), sub_bass_chance=0.3,
		description="Detuned space pads over a deep sub bass"
	))

	registry.register("underwater_palace", lambda: PadEngine(
		"Underwater Palace", chord_size=3, duration=(6.0, 16.0), interval=(4.0, 7.0),
		reverb_decay=12.0, room_size=0.85, filter=(400.0, "lowpass", 8.0),
		lfos=(LfoSpec("filter", 0.15, 200.0, 600.0),),
		description="Muffled pads swimming through a moving filter"
	))

	registry.register("neon_nocturne", lambda: PadEngine(
		"Neon Nocturne", chord_size=3, duration=(3.0, 7.0), interval=(3.0, 5.0), program=81,
		reverb_decay=6.0, room_size=0.7, chorus=(0.5, 2.5, 0.5),
		description="Warm synthwave chords"
	))

	registry.register("atmospheric_temple", lambda: PadEngine(
		"Atmospheric Temple", chord_size=2, duration=(4.0, 12.0), interval=(3.0, 6.0), program=94,
		reverb_decay=12.0, room_size=0.85, filter=(1500.0, "lowpass", 2.0),
		lfos=(LfoSpec("filter", 0.08, 1000.0, 2000.0, "triangle"),),
		description="Airy pads in a resonant hall"
	))

	registry.register("glass_horizon", lambda: PadEngine(
		"Glass Horizon", chord_size=3, duration=(8.0, 18.0), interval=(5.0, 8.0), program=92,
		reverb_decay=18.0, room_size=0.9, filter=(2500.0, "highpass", 4.0), chorus=(0.3, 3.0, 0.7),
		description="Bright shimmering glass pads"
	))

	registry.register("nebula_drift", lambda: PadEngine(
		"Nebula Drift", chord_size=4, duration=(10.0, 24.0), interval=(6.0, 9.0),
		reverb_decay=20.0, room_size=0.95, gain=0.6,
		lfos=(LfoSpec("gain", 0.05, 0.3, 1.0, "triangle"),),
		description="Cloudy four-note swells"
	))

	registry.register("thermal_layers", lambda: PadEngine(
		"Thermal Layers", chord_size=3, duration=(6.0, 14.0), interval=(4.0, 7.0),
		reverb_decay=12.0, room_size=0.8, filter=(1200.0, "lowpass", 3.0), gain=0.7,
		lfos=(LfoSpec("gain", 0.12, 0.4, 1.2),),
		description="Warm pads rising and falling in layers"
	))

	registry.register("ethereal_void", lambda: PadEngine(
		"Ethereal Void", chord_size=2, duration=(8.0, 20.0), interval=(6.0, 10.0), program=91,
		reverb_decay=15.0, room_size=0.95, filter=(1200.0, "lowpass", 2.0),
		lfos=(LfoSpec("filter", 0.08, 800.0, 1600.0),),
		description="Sparse floating dyads"
	))

	registry.register("aurora_field", lambda: PadEngine(
		"Aurora Field", chord_size=3, duration=(6.0, 15.0), interval=(4.0, 6.0),
		reverb_decay=16.0, room_size=0.9, filter=(1500.0, "bandpass", 5.0), gain=0.8,
		lfos=(LfoSpec("filter", 0.15, 800.0, 2000.0), LfoSpec("gain", 0.08, 0.5, 1.5, "triangle")),
		description="Shifting colours through a swept band"
	))

	registry.register("deep_resonance", lambda: DroneEngine(
		"Deep Resonance", chord_size=3, duration=(8.0, 20.0), interval=(5.0, 8.0),
		filter=(400.0, "bandpass", 12.0), reverb_decay=22.0, room_size=0.95,
		description="A resonant drone in a vast cavern"
	))

	registry.register("dark_matter", lambda: DroneEngine(
		"Dark Matter", chord_size=2, duration=(10.0, 25.0), interval=(8.0, 12.0),
		filter=(300.0, "lowpass", 6.0), reverb_decay=25.0, room_size=0.98,
		description="A heavy low drone with distant harmonics"
	))

	return registry
