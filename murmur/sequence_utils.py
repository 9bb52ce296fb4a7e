"""Small random and numeric helpers shared by the generators and the graph."""

import random
import typing


T = typing.TypeVar("T")


def random_walk (n: int, low: int, high: int, step: int, rng: random.Random, start: typing.Optional[int] = None) -> typing.List[int]:

	"""Wander ``n`` integers through ``[low, high]``, never jumping more than ``step``.

	Melodic phrases walk over scale indices: the walk begins at the seed
	pitch's index (``start``, or the middle of the range when omitted) and
	every later index is the previous one nudged by ``rng.randint(-step,
	step)`` and held inside the range.

	Example:
		```python
		# Five indices into a 12-note scale, starting on the fifth note
		walk = murmur.sequence_utils.random_walk(5, low=0, high=11, step=2, rng=rng, start=4)
		```
	"""

	if n <= 0:
		return []

	if high < low:
		raise ValueError(f"Empty range: low={low}, high={high}")

	def clamp (value: int) -> int:
		return min(high, max(low, value))

	position = clamp((low + high) // 2 if start is None else start)
	walk = [position]

	while len(walk) < n:
		position = clamp(position + rng.randint(-step, step))
		walk.append(position)

	return walk


def scale_clamp (value: float, in_min: float, in_max: float, out_min: float = 0.0, out_max: float = 1.0) -> float:

	"""Map ``value`` linearly from one range onto another, clipped to the target.

	Either range may run backwards.  The graph uses this to turn wet mixes,
	gains and velocities into 0-127 controller values.

	Example:
		```python
		cc = round(murmur.sequence_utils.scale_clamp(wet, 0.0, 1.0, 0, 127))
		```
	"""

	if in_max == in_min:
		raise ValueError(f"Cannot map from a zero-width range ({in_min}..{in_max})")

	fraction = (value - in_min) / (in_max - in_min)
	mapped = out_min + fraction * (out_max - out_min)
	lowest, highest = sorted((out_min, out_max))

	return min(highest, max(lowest, mapped))


def weighted_choice (options: typing.Sequence[typing.Tuple[T, float]], rng: random.Random) -> T:

	"""Choose a value from ``(value, weight)`` pairs in proportion to the weights.

	Weights need not sum to one.

	Example:
		```python
		# Octave shift for a drifting flute line
		shift = murmur.sequence_utils.weighted_choice([(1, 0.15), (-1, 0.10), (0, 0.75)], rng)
		```
	"""

	if not options:
		raise ValueError("Nothing to choose from")

	total = sum(weight for _, weight in options)

	if total <= 0:
		raise ValueError(f"Weights must add up to more than zero (got {total})")

	remaining = rng.random() * total

	for value, weight in options:
		remaining -= weight
		if remaining <= 0:
			return value

	return options[-1][0]
