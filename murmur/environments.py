"""Environmental sound layers.

Layers play alongside the music rather than instead of it: surf on a
shoreline, a thunderstorm over steady rain, the tick of a grandfather
clock.  Each one is an :class:`murmur.ambient.Engine`, so it runs on its
own :class:`murmur.ambient.AmbientScheduler` with the same start, stop
and dispose behaviour as the ambient engines, and every recurring event
is a ``schedule_next`` chain.

The sounds come from General MIDI sound-effect programs.  Slow level
changes (a wave building, rain fading in) are glides: a chain of
control-rate steps on the scheduler's timers, so stopping a layer freezes
them along with everything else.
"""

import logging
import typing

import murmur.ambient
import murmur.engines
import murmur.graph
import murmur.lifecycle
import murmur.registry

if typing.TYPE_CHECKING:
	from murmur.ambient import AmbientScheduler


logger = logging.getLogger(__name__)

Range = typing.Tuple[float, float]


class EnvironmentEngine (murmur.ambient.Engine):

	"""Base for environmental layers.  Adds parameter glides."""

	def __init__ (self) -> None:
		self._glides: typing.Dict[str, int] = {}

	def glide (self, scheduler: "AmbientScheduler", key: str, param: murmur.graph.Param, target: float, seconds: float) -> None:

		"""Move ``param`` to ``target`` over ``seconds`` in control-rate steps.

		A newer glide under the same ``key`` takes over from an older one,
		starting from wherever the older one had got to.
		"""

		generation = self._glides.get(key, 0) + 1
		self._glides[key] = generation

		steps = max(1, round(seconds / murmur.graph.CONTROL_INTERVAL))
		start = param.value

		def step (i: int) -> None:

			if self._glides.get(key) != generation:
				return

			param.value = start + (target - start) * i / steps

			if i < steps:
				scheduler.schedule_next(lambda: step(i + 1), murmur.graph.CONTROL_INTERVAL, murmur.graph.CONTROL_INTERVAL)

		scheduler.schedule_next(lambda: step(1), murmur.graph.CONTROL_INTERVAL, murmur.graph.CONTROL_INTERVAL)


class OceanWavesEngine (EnvironmentEngine):

	"""
	Surf that swells, holds and recedes in an endless cycle.

	A sustained Seashore note provides the bed.  Each wave raises the
	swell gain to a varied peak, holds it briefly, lets it fall back to a
	varied base level and then waits about ``pause`` seconds for the next.
	``build_speed`` above 2.5 builds waves faster, below it slower.
	"""

	name = "Ocean Waves"
	description = "Surf rising and falling on a shoreline"

	CHANNELS = 1
	PROGRAM = 122
	NOTE = "C4"

	def __init__ (
		self,
		pause: float = 8.0,
		duration: Range = (4.0, 10.0),
		base_level: float = 0.3,
		peak_level: float = 1.2,
		build_speed: float = 2.5,
		filter_frequency: float = 1200.0
	) -> None:

		super().__init__()

		self.pause = pause
		self.duration = duration
		self.base_level = base_level
		self.peak_level = peak_level
		self.build_speed = build_speed
		self.filter_frequency = filter_frequency

		self.phase = "waiting"
		self.waves = 0
		self.swell: typing.Optional[murmur.graph.Gain] = None

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		surf = murmur.graph.PolyVoice(scheduler.clock, scheduler.channel(0), program=self.PROGRAM, volume=-6.0, name="surf")
		tone = murmur.graph.Filter(frequency=self.filter_frequency, type="lowpass", q=1.0, name="wave filter")
		self.swell = murmur.graph.Gain(self.base_level, name="wave swell")
		reverb = murmur.graph.Reverb(decay=3.0, wet=0.4, pre_delay=0.02, name="wave reverb")

		output = murmur.engines.output_for(scheduler)

		if output is not None:
			reverb.connect(output)

		self.swell.connect(reverb)
		tone.connect(self.swell)
		surf.connect(tone)

		return murmur.lifecycle.Rig(voices={"surf": surf}, effects=[tone, self.swell, reverb])

	def initiate (self, scheduler: "AmbientScheduler") -> None:

		scheduler.voice("surf").trigger_attack(self.NOTE)
		self.wait(scheduler)

	def wait (self, scheduler: "AmbientScheduler") -> None:

		self.phase = "waiting"
		scheduler.schedule_next(lambda: self.rise(scheduler), self.pause * 0.75, self.pause * 1.25)

	def rise (self, scheduler: "AmbientScheduler") -> None:

		rng = scheduler.rng
		duration = rng.uniform(*self.duration)
		speed = self.build_speed / 2.5

		build = duration * (0.15 + rng.random() * 0.25) / speed
		sustain = duration * (0.1 + rng.random() * 0.2)
		recede = max(murmur.graph.CONTROL_INTERVAL, duration - build - sustain)
		peak = self.peak_level * (0.8 + rng.random() * 0.4)

		self.phase = "building"
		self.waves += 1
		self.glide(scheduler, "swell", self.swell.gain, peak, build)

		scheduler.schedule_next(lambda: self.hold(scheduler, peak, sustain, recede), build, build)

	def hold (self, scheduler: "AmbientScheduler", peak: float, sustain: float, recede: float) -> None:

		self.phase = "sustaining"
		self.glide(scheduler, "swell", self.swell.gain, peak * (0.9 + scheduler.rng.random() * 0.2), sustain * 0.5)

		scheduler.schedule_next(lambda: self.fall(scheduler, recede), sustain, sustain)

	def fall (self, scheduler: "AmbientScheduler", recede: float) -> None:

		self.phase = "receding"
		self.glide(scheduler, "swell", self.swell.gain, self.base_level * (0.5 + scheduler.rng.random()), recede)

		scheduler.schedule_next(lambda: self.wait(scheduler), recede, recede)

	def on_stop (self, scheduler: "AmbientScheduler") -> None:
		self.phase = "waiting"


class ThunderstormEngine (EnvironmentEngine):

	"""
	Rain that fades in and stays, with thunder rolling in at random.

	The first strike comes 2-5 seconds after starting, later ones 2 to
	``2 + frequency`` seconds apart.  Every strike has a random distance:
	distant thunder is lower, darker, softer, wetter and longer.
	"""

	name = "Thunderstorm"
	description = "Steady rain with distant and close thunder"

	CHANNELS = 2
	RAIN_PROGRAM = 96
	THUNDER_PROGRAM = 47

	RAIN_NOTE = "C4"
	# Lowest first: the farther the strike, the lower the note.
	RUMBLE_NOTES = ("C1", "E1", "G1", "C2")

	def __init__ (self, intensity: float = 0.7, frequency: float = 8.0, rain_level: float = 0.5, rain_fade: float = 2.0) -> None:

		super().__init__()

		self.intensity = intensity
		self.frequency = frequency
		self.rain_level = rain_level
		self.rain_fade = rain_fade

		self.strikes = 0
		self.rain_gain: typing.Optional[murmur.graph.Gain] = None
		self.rumble_filter: typing.Optional[murmur.graph.Filter] = None
		self.reverb: typing.Optional[murmur.graph.Reverb] = None

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		clock = scheduler.clock

		rain = murmur.graph.PolyVoice(clock, scheduler.channel(0), program=self.RAIN_PROGRAM, volume=-4.0, name="rain")
		rumble = murmur.graph.MonoVoice(clock, scheduler.channel(1), program=self.THUNDER_PROGRAM, volume=-3.0, name="thunder")

		rain_filter = murmur.graph.Filter(frequency=1000.0, type="highpass", q=0.5, name="rain filter")
		self.rain_gain = murmur.graph.Gain(0.0, name="rain gain")
		self.rumble_filter = murmur.graph.Filter(frequency=200.0, type="lowpass", q=2.0, name="thunder filter")
		delay = murmur.graph.Delay(delay_time=0.3, feedback=0.2, wet=0.2, name="storm delay")
		self.reverb = murmur.graph.Reverb(decay=4.0, wet=0.4, pre_delay=0.1, name="storm reverb")

		output = murmur.engines.output_for(scheduler)

		if output is not None:
			self.reverb.connect(output)

		delay.connect(self.reverb)
		self.rumble_filter.connect(delay)
		self.rain_gain.connect(delay)
		rain_filter.connect(self.rain_gain)

		rumble.connect(self.rumble_filter)
		rain.connect(rain_filter)

		return murmur.lifecycle.Rig(
			voices={"rain": rain, "thunder": rumble},
			effects=[rain_filter, self.rain_gain, self.rumble_filter, delay, self.reverb]
		)

	def initiate (self, scheduler: "AmbientScheduler") -> None:

		self.rain_gain.gain.value = 0.0
		scheduler.voice("rain").trigger_attack(self.RAIN_NOTE)
		self.glide(scheduler, "rain", self.rain_gain.gain, self.rain_level, self.rain_fade)

		scheduler.schedule_next(lambda: self.strike(scheduler), 2.0, 5.0)

	def strike (self, scheduler: "AmbientScheduler") -> None:

		distance = scheduler.rng.random()

		self.rumble_filter.frequency.value = 200.0 - distance * 120.0
		self.reverb.wet.value = 0.3 + distance * 0.5

		note = self.RUMBLE_NOTES[min(len(self.RUMBLE_NOTES) - 1, int((1.0 - distance) * len(self.RUMBLE_NOTES)))]
		duration = 2.0 + self.intensity * 4.0 + distance * 2.0

		scheduler.voice("thunder").trigger_attack_release(note, duration, velocity=self.intensity * (1.0 - 0.4 * distance))
		self.strikes += 1

		logger.debug(f"Thunder at distance {distance:.2f}")

		scheduler.schedule_next(lambda: self.strike(scheduler), 2.0, 2.0 + self.frequency)


class GrandfatherClockEngine (EnvironmentEngine):

	"""A woodblock tick at ``tempo`` beats per minute in a very large room."""

	name = "Grandfather Clock"
	description = "A slow pendulum tick in a vast hall"

	CHANNELS = 1
	PROGRAM = 115

	TICK_NOTE = "C5"
	TICK_DURATION = 0.05
	FIRST_TICK = 0.1

	MIN_TEMPO = 30
	MAX_TEMPO = 120

	def __init__ (self, tempo: float = 60, brightness: float = 2000.0, reverb_decay: float = 25.0, reverb_wet: float = 0.8) -> None:

		super().__init__()

		self.tempo = self._clamp_tempo(tempo)
		self.brightness = brightness
		self.reverb_decay = reverb_decay
		self.reverb_wet = reverb_wet
		self.beat = 0

	@classmethod
	def _clamp_tempo (cls, bpm: float) -> float:
		return max(cls.MIN_TEMPO, min(cls.MAX_TEMPO, bpm))

	def set_tempo (self, bpm: float) -> None:

		"""Change the tempo from the next tick on."""

		self.tempo = self._clamp_tempo(bpm)

	def build (self, scheduler: "AmbientScheduler") -> murmur.lifecycle.Rig:

		tick = murmur.graph.PolyVoice(scheduler.clock, scheduler.channel(0), program=self.PROGRAM, volume=-6.0, velocity=0.6, name="tick")
		brightness = murmur.graph.Filter(frequency=self.brightness, type="lowpass", q=2.0, name="clock brightness")
		reverb = murmur.graph.Reverb(decay=self.reverb_decay, wet=self.reverb_wet, pre_delay=0.1, name="clock reverb")

		output = murmur.engines.output_for(scheduler)

		if output is not None:
			reverb.connect(output)

		brightness.connect(reverb)
		tick.connect(brightness)

		return murmur.lifecycle.Rig(voices={"tick": tick}, effects=[brightness, reverb])

	def initiate (self, scheduler: "AmbientScheduler") -> None:
		scheduler.schedule_next(lambda: self.tick(scheduler), self.FIRST_TICK, self.FIRST_TICK)

	def tick (self, scheduler: "AmbientScheduler") -> None:

		scheduler.voice("tick").trigger_attack_release(self.TICK_NOTE, self.TICK_DURATION)
		self.beat += 1

		interval = 60.0 / self.tempo
		scheduler.schedule_next(lambda: self.tick(scheduler), interval, interval)


class EnvironmentRegistry (murmur.registry.Registry[murmur.ambient.Engine]):

	def __init__ (self) -> None:
		super().__init__("layer")


def default_registry () -> EnvironmentRegistry:

	"""A registry holding every built-in environmental layer."""

	registry = EnvironmentRegistry()

	registry.register("ocean_waves", OceanWavesEngine)
	registry.register("thunderstorm", ThunderstormEngine)
	registry.register("grandfather_clock", GrandfatherClockEngine)

	return registry
