"""A MIDI voice graph.

Generators do not synthesise audio; they play a graph of nodes that ends at
a MIDI output port.  Each node forwards messages to the node it is
connected to, and the last node (a :class:`MasterOutput`) writes them to
the port.

- **Voices** (:class:`PolyVoice`, :class:`MonoVoice`) own one MIDI channel
  each and emit notes.
- **Effects** (:class:`Reverb`, :class:`Delay`, :class:`Chorus`,
  :class:`Filter`, :class:`Gain`) pass notes through unchanged and
  express their settings as controller messages on every channel routed
  through them.
- **Modulation sources** (:class:`LFO`) periodically write a waveform into
  a :class:`Param` of another node.

Chains are wired from the output end backwards: a node announces its
program and controller settings when something connects to it, and those
messages only reach the port if the rest of the chain already exists::

	voice = murmur.graph.PolyVoice(clock, channel=0, program=0)
	reverb = murmur.graph.Reverb(decay=10, wet=0.5)

	reverb.connect(master)
	voice.connect(reverb)

	voice.trigger_attack_release("C4", duration=1.5, delay=0.8)
"""

import logging
import math
import typing

import mido

import murmur.clock
import murmur.conductor
import murmur.notes
import murmur.sequence_utils
import murmur.timers


logger = logging.getLogger(__name__)


# General MIDI controller numbers.
CC_VOLUME = 7
CC_EXPRESSION = 11
CC_RESONANCE = 71
CC_BRIGHTNESS = 74
CC_REVERB_SEND = 91
CC_CHORUS_SEND = 93
CC_DELAY_SEND = 94

# Highest gain a Gain node can express; LFO swells go above unity.
GAIN_CEILING = 1.5

# Seconds between LFO updates.
CONTROL_INTERVAL = 0.25

Notes = typing.Union[murmur.notes.Pitch, typing.Sequence[murmur.notes.Pitch]]


def _as_list (notes: Notes) -> typing.List[murmur.notes.Pitch]:

	if isinstance(notes, (str, int)):
		return [notes]

	return list(notes)


def _unit_to_cc (value: float) -> int:
	return round(murmur.sequence_utils.scale_clamp(value, 0.0, 1.0, 0, 127))


def _db_to_cc (db: float) -> int:
	return _unit_to_cc(10 ** (db / 20.0))


def _hz_to_cc (hz: float) -> int:

	"""Map 20 Hz – 20 kHz logarithmically onto 0–127."""

	return _unit_to_cc(math.log(max(hz, 20.0) / 20.0) / math.log(1000.0))


class Param:

	"""
	A controllable value, like a knob.

	Setting ``value`` clamps it to the allowed range and notifies the owning
	node, which turns the change into a controller message.
	"""

	def __init__ (
		self,
		value: float,
		on_change: typing.Optional[typing.Callable[[float], None]] = None,
		minimum: typing.Optional[float] = None,
		maximum: typing.Optional[float] = None
	) -> None:

		self._on_change = on_change
		self.minimum = minimum
		self.maximum = maximum
		self._value = self._clamp(value)

	def _clamp (self, value: float) -> float:

		if self.minimum is not None:
			value = max(self.minimum, value)

		if self.maximum is not None:
			value = min(self.maximum, value)

		return value

	@property
	def value (self) -> float:
		return self._value

	@value.setter
	def value (self, value: float) -> None:

		self._value = self._clamp(value)

		if self._on_change is not None:
			self._on_change(self._value)


class Node:

	"""A point in the graph that forwards messages to its destination."""

	def __init__ (self, name: str) -> None:

		self.name = name
		self.destination: typing.Optional["Node"] = None
		self.channels: typing.Set[int] = set()
		self.disposed = False

	def connect (self, destination: "Node") -> "Node":

		"""Route this node's output into ``destination``.  Returns ``self``."""

		self.destination = destination
		destination._adopt(self.channels)

		return self

	def _adopt (self, channels: typing.Set[int]) -> None:

		"""Learn which channels flow through this node, passing them downstream."""

		new = set(channels) - self.channels

		if not new:
			return

		self.channels |= new
		self._on_channels(new)

		if self.destination is not None:
			self.destination._adopt(new)

	def _on_channels (self, channels: typing.Set[int]) -> None:

		"""Hook for nodes that must push their state to newly routed channels."""

		pass

	def send (self, message: mido.Message) -> None:

		if self.disposed:
			return

		if self.destination is None:
			logger.debug(f"{self.name}: dropped {message.type}, not connected")
			return

		self.destination.send(message)

	def _control (self, control: int, value: int, channels: typing.Optional[typing.Iterable[int]] = None) -> None:

		for channel in sorted(self.channels if channels is None else channels):
			self.send(mido.Message("control_change", channel=channel, control=control, value=value))

	def dispose (self) -> None:

		self.disposed = True
		self.destination = None


class MasterOutput (Node):

	"""
	The end of the graph: writes messages to a MIDI output port.

	``volume`` (0.0–1.0) is sent as a Universal SysEx master volume message.
	Without a port (``None``) messages are silently discarded, which keeps
	the engine usable when no MIDI device is present.
	"""

	def __init__ (self, port: typing.Any = None, name: str = "master", volume: float = 0.8) -> None:

		super().__init__(name)

		self.port = port
		self.volume = Param(volume, on_change=self._send_volume, minimum=0.0, maximum=1.0)

	def send (self, message: mido.Message) -> None:

		if self.port is not None:
			self.port.send(message)

	def _send_volume (self, value: float) -> None:

		level = round(value * 16383)
		self.send(mido.Message("sysex", data=[0x7F, 0x7F, 0x04, 0x01, level & 0x7F, level >> 7]))


class Reverb (Node):

	"""A reverb send.  ``wet`` (0.0–1.0) becomes the GM reverb send level."""

	def __init__ (self, decay: float = 10.0, wet: float = 0.5, room_size: typing.Optional[float] = None, pre_delay: float = 0.0, name: str = "reverb") -> None:

		super().__init__(name)

		self.decay = decay
		self.room_size = room_size
		self.pre_delay = pre_delay
		self.wet = Param(wet, on_change=lambda v: self._control(CC_REVERB_SEND, _unit_to_cc(v)), minimum=0.0, maximum=1.0)

	def _on_channels (self, channels: typing.Set[int]) -> None:
		self._control(CC_REVERB_SEND, _unit_to_cc(self.wet.value), channels)


class Delay (Node):

	"""A (ping-pong) delay send.  ``wet`` becomes the effects-4 send level."""

	def __init__ (self, delay_time: float = 0.25, feedback: float = 0.3, wet: float = 0.25, name: str = "delay") -> None:

		super().__init__(name)

		self.delay_time = delay_time
		self.feedback = feedback
		self.wet = Param(wet, on_change=lambda v: self._control(CC_DELAY_SEND, _unit_to_cc(v)), minimum=0.0, maximum=1.0)

	def _on_channels (self, channels: typing.Set[int]) -> None:
		self._control(CC_DELAY_SEND, _unit_to_cc(self.wet.value), channels)


class Chorus (Node):

	"""A chorus send.  ``wet`` becomes the GM chorus send level."""

	def __init__ (self, frequency: float = 0.5, delay_time: float = 2.5, depth: float = 0.5, wet: float = 0.5, name: str = "chorus") -> None:

		super().__init__(name)

		self.frequency = frequency
		self.delay_time = delay_time
		self.depth = depth
		self.wet = Param(wet, on_change=lambda v: self._control(CC_CHORUS_SEND, _unit_to_cc(v)), minimum=0.0, maximum=1.0)

	def _on_channels (self, channels: typing.Set[int]) -> None:
		self._control(CC_CHORUS_SEND, _unit_to_cc(self.wet.value), channels)


class Filter (Node):

	"""A filter expressed as brightness (cutoff) and resonance controllers."""

	def __init__ (self, frequency: float = 1000.0, type: str = "lowpass", q: float = 1.0, name: str = "filter") -> None:

		super().__init__(name)

		self.type = type
		self.frequency = Param(frequency, on_change=lambda v: self._control(CC_BRIGHTNESS, _hz_to_cc(v)), minimum=20.0, maximum=20000.0)
		self.q = Param(q, on_change=lambda v: self._control(CC_RESONANCE, self._q_to_cc(v)), minimum=0.0, maximum=20.0)

	@staticmethod
	def _q_to_cc (q: float) -> int:
		return round(murmur.sequence_utils.scale_clamp(q, 0.0, 20.0, 0, 127))

	def _on_channels (self, channels: typing.Set[int]) -> None:

		self._control(CC_BRIGHTNESS, _hz_to_cc(self.frequency.value), channels)
		self._control(CC_RESONANCE, self._q_to_cc(self.q.value), channels)


class Gain (Node):

	"""A gain stage expressed as the expression controller."""

	def __init__ (self, gain: float = 1.0, name: str = "gain") -> None:

		super().__init__(name)

		self.gain = Param(gain, on_change=lambda v: self._control(CC_EXPRESSION, self._gain_to_cc(v)), minimum=0.0, maximum=GAIN_CEILING)

	@staticmethod
	def _gain_to_cc (gain: float) -> int:
		return round(murmur.sequence_utils.scale_clamp(gain, 0.0, GAIN_CEILING, 0, 127))

	def _on_channels (self, channels: typing.Set[int]) -> None:
		self._control(CC_EXPRESSION, self._gain_to_cc(self.gain.value), channels)


class _Voice (Node):

	"""Note plumbing shared by poly and mono voices."""

	def __init__ (
		self,
		clock: murmur.clock.Clock,
		channel: int,
		program: typing.Optional[int] = None,
		volume: float = 0.0,
		velocity: float = 0.7,
		name: str = "voice"
	) -> None:

		"""
		Parameters:
			clock: Clock used for delayed note-ons and note-offs.
			channel: MIDI channel (0–15) this voice owns.
			program: Optional General MIDI program sent on connect.
			volume: Channel volume in dB (0 = full scale).
			velocity: Default note velocity (0.0–1.0).
		"""

		if not 0 <= channel <= 15:
			raise ValueError(f"MIDI channel must be 0-15, got {channel}")

		super().__init__(name)

		self.channel = channel
		self.channels = {channel}
		self.program = program
		self.velocity = velocity
		self.volume = Param(volume, on_change=lambda v: self._control(CC_VOLUME, _db_to_cc(v)), minimum=-60.0, maximum=6.0)

		# MIDI note number -> number of overlapping note-ons.
		self.sounding: typing.Dict[int, int] = {}
		self._timers = murmur.timers.TimerSet(clock)

	def connect (self, destination: Node) -> Node:

		super().connect(destination)

		if self.program is not None:
			self.send(mido.Message("program_change", channel=self.channel, program=self.program))

		self._control(CC_VOLUME, _db_to_cc(self.volume.value))

		return self

	@property
	def pending (self) -> int:

		"""Number of scheduled note events not yet sent."""

		return len(self._timers)

	def _velocity (self, velocity: typing.Optional[float]) -> int:

		value = self.velocity if velocity is None else velocity
		return max(1, round(murmur.sequence_utils.scale_clamp(value, 0.0, 1.0, 0, 127)))

	def _note_on (self, note: int, velocity: int) -> None:

		self.sounding[note] = self.sounding.get(note, 0) + 1
		self.send(mido.Message("note_on", channel=self.channel, note=note, velocity=velocity))

	def _note_off (self, note: int) -> None:

		count = self.sounding.get(note, 0)

		if count <= 0:
			return

		if count == 1:
			del self.sounding[note]
		else:
			self.sounding[note] = count - 1

		self.send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))

	def _silence (self) -> None:

		"""Drop every scheduled event and end every sounding note."""

		self._timers.cancel_all()

		for note, count in list(self.sounding.items()):
			for _ in range(count):
				self._note_off(note)

	def trigger_attack_release (self, notes: Notes, duration: float, delay: float = 0.0, velocity: typing.Optional[float] = None) -> None:

		"""Play ``notes`` for ``duration`` seconds, starting ``delay`` seconds from now.

		Returns immediately; the note-on and note-off are clock callbacks.
		"""

		midi_notes = [murmur.notes.note_number(n) for n in _as_list(notes)]
		midi_velocity = self._velocity(velocity)

		for note in midi_notes:

			if delay <= 0:
				self._note_on(note, midi_velocity)
			else:
				self._timers.arm(delay, lambda n=note: self._note_on(n, midi_velocity))

			self._timers.arm(max(0.0, delay) + duration, lambda n=note: self._note_off(n))

	def dispose (self) -> None:

		if self.disposed:
			return

		self._silence()
		super().dispose()


class PolyVoice (_Voice):

	"""A polyphonic voice: any number of overlapping notes on one channel."""

	def trigger_attack (self, notes: Notes, velocity: typing.Optional[float] = None) -> None:

		midi_velocity = self._velocity(velocity)

		for note in _as_list(notes):
			self._note_on(murmur.notes.note_number(note), midi_velocity)

	def trigger_release (self, notes: typing.Optional[Notes] = None) -> None:

		"""Release ``notes``, or everything currently sounding when omitted."""

		if notes is None:
			self.release_all()
			return

		for note in _as_list(notes):
			self._note_off(murmur.notes.note_number(note))

	def release_all (self) -> None:

		"""Release every sounding note and cancel every scheduled one."""

		self._silence()


class MonoVoice (_Voice):

	"""
	A monophonic voice: a new attack releases the previous note.

	Mono voices have no ``release_all``; ``trigger_release`` ends whatever
	is sounding and anything still scheduled.
	"""

	def trigger_attack (self, note: murmur.notes.Pitch, velocity: typing.Optional[float] = None) -> None:

		for current in list(self.sounding):
			self._note_off(current)

		self._note_on(murmur.notes.note_number(note), self._velocity(velocity))

	def trigger_release (self) -> None:
		self._silence()


class LFO:

	"""
	A clock-driven modulation source.

	Once started, writes its waveform into the connected :class:`Param`
	every ``CONTROL_INTERVAL`` seconds until stopped or disposed.

	Example:
		```python
		lfo = murmur.graph.LFO(clock, frequency=0.15, min_val=200, max_val=600)
		lfo.connect(depth_filter.frequency).start()
		```
	"""

	def __init__ (
		self,
		clock: murmur.clock.Clock,
		frequency: float,
		min_val: float,
		max_val: float,
		shape: str = "sine",
		name: str = "lfo"
	) -> None:

		self.name = name
		self.clock = clock
		self.wave = murmur.conductor.LFO(shape=shape, frequency=frequency, min_val=min_val, max_val=max_val)
		self.target: typing.Optional[Param] = None
		self.disposed = False
		self._timers = murmur.timers.TimerSet(clock)
		self._started_at = 0.0

	@property
	def running (self) -> bool:
		return len(self._timers) > 0

	def connect (self, target: Param) -> "LFO":

		self.target = target
		return self

	def start (self) -> "LFO":

		if self.disposed or self.running:
			return self

		self._started_at = self.clock.time()
		self._tick()

		return self

	def _tick (self) -> None:

		if self.target is not None:
			self.target.value = self.wave.value_at(self.clock.time() - self._started_at)

		self._timers.arm(CONTROL_INTERVAL, self._tick)

	def stop (self) -> None:
		self._timers.cancel_all()

	def dispose (self) -> None:

		self.stop()
		self.target = None
		self.disposed = True


def is_reverb (node: typing.Any) -> bool:

	"""True for reverb-type effects: a ``wet`` control plus a decay or room size."""

	return hasattr(node, "wet") and (hasattr(node, "decay") or hasattr(node, "room_size"))
