import math
import typing


def _sine (cycle: float) -> float:
	return (math.sin(cycle * 2 * math.pi) + 1) / 2


def _triangle (cycle: float) -> float:
	return 1 - abs(1 - cycle * 2)


def _ramp (cycle: float) -> float:
	return cycle


def _pulse (cycle: float) -> float:
	return 1.0 if cycle < 0.5 else 0.0


# Each shape maps a position within one cycle (0..1) onto 0..1.
SHAPES: typing.Dict[str, typing.Callable[[float], float]] = {
	"sine": _sine,
	"triangle": _triangle,
	"saw": _ramp,
	"square": _pulse,
}


class Signal:

	"""Anything that can be sampled at a point in time."""

	def value_at (self, seconds: float) -> float:
		raise NotImplementedError


class LFO (Signal):

	"""
	A slow periodic waveform.

	Ambient textures use LFOs with cycles several seconds long to sweep a
	filter or swell a gain.  This class is only the waveform; the
	clock-driven modulator that writes it into a parameter is
	:class:`murmur.graph.LFO`.

	Parameters:
		shape: One of ``SHAPES`` ("sine", "triangle", "saw", "square").
		frequency: Cycles per second, so 0.1 is one sweep every 10 seconds.
		min_val: Value at the bottom of the sweep.
		max_val: Value at the top of the sweep.
		phase: Fraction of a cycle to start into.
	"""

	def __init__ (self, shape: str = "sine", frequency: float = 0.1, min_val: float = 0.0, max_val: float = 1.0, phase: float = 0.0) -> None:

		if frequency <= 0:
			raise ValueError("LFO frequency must be positive")

		if shape not in SHAPES:
			raise ValueError(f"Unknown LFO shape '{shape}'. Available: {sorted(SHAPES)}")

		self.shape = shape
		self.frequency = frequency
		self.min_val = min_val
		self.max_val = max_val
		self.phase = phase

	def value_at (self, seconds: float) -> float:

		cycle = (seconds * self.frequency + self.phase) % 1.0
		level = SHAPES[self.shape](cycle)

		return self.min_val + level * (self.max_val - self.min_val)
