import random
import typing

import mido
import pytest

import murmur.clock
import murmur.graph
import murmur.manager


class FakeMidiOut:

	"""MIDI output stub that records every message it is sent."""

	def __init__ (self, name: str = "Dummy MIDI", virtual: bool = False) -> None:

		self.name = name
		self.virtual = virtual
		self.messages: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Keep the message for later assertions."""

		self.messages.append(message)

	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True

	def of_type (self, kind: str) -> typing.List[mido.Message]:

		"""Recorded messages of one type (``"note_on"``, ``"control_change"``, ...)."""

		return [m for m in self.messages if m.type == kind]

	def notes_on (self, channel: typing.Optional[int] = None) -> typing.List[int]:

		"""Note numbers of every recorded note-on, optionally for one channel."""

		return [m.note for m in self.of_type("note_on") if channel is None or m.channel == channel]

	def controls (self, control: int, channel: typing.Optional[int] = None) -> typing.List[int]:

		"""Values of every recorded control change for one controller."""

		return [
			m.value for m in self.of_type("control_change")
			if m.control == control and (channel is None or m.channel == channel)
		]


class ScriptedRandom (random.Random):

	"""
	A seeded random source whose phrase-shaping draws can be scripted.

	``randint(3, 7)`` (the phrase length) returns ``length`` and
	``randint(-2, 2)`` (a walk step) pops from ``steps``, defaulting to 0
	once the script runs out.  Every other draw comes from the seed.
	"""

	def __init__ (self, *, length: int = 3, steps: typing.Sequence[int] = (), seed: int = 1) -> None:

		super().__init__(seed)

		self.length = length
		self.steps = list(steps)

	def randint (self, a: int, b: int) -> int:

		if (a, b) == (3, 7):
			return self.length

		if (a, b) == (-2, 2):
			return self.steps.pop(0) if self.steps else 0

		return super().randint(a, b)


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str, virtual: bool = False) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut(name, virtual=virtual)


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use the fake MIDI output."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def clock () -> murmur.clock.VirtualClock:

	"""A simulated clock starting at zero."""

	return murmur.clock.VirtualClock()


@pytest.fixture
def rng () -> random.Random:

	"""A seeded random source."""

	return random.Random(42)


@pytest.fixture
def output () -> FakeMidiOut:

	"""A recording MIDI port."""

	return FakeMidiOut()


@pytest.fixture
def master (output: FakeMidiOut) -> murmur.graph.MasterOutput:

	"""A master output writing to the recording port."""

	return murmur.graph.MasterOutput(output)


@pytest.fixture
def destinations (output: FakeMidiOut) -> murmur.manager.Destinations:

	"""Master output and global buses on the recording port."""

	return murmur.manager.build_destinations(output)
