"""Named moods.

A mood is the musical material an external controller hands to the
generators: an ordered Scale and a Pattern of seed pitches drawn from it.
Patterns are the chord tones of the mood's key in the fourth octave, so
they are always a subset of the Scale.
"""

import dataclasses
import typing

import murmur.intervals
import murmur.notes


@dataclasses.dataclass(frozen=True)
class Mood:

	key: str
	mode: str
	low_octave: int = 2
	high_octave: int = 5
	# Scale degrees (0-based within the mode) that seed melodic phrases.
	seed_degrees: typing.Tuple[int, ...] = (0, 2, 4)
	seed_octave: int = 4

	def scale (self) -> typing.List[str]:
		return murmur.intervals.build_scale(self.key, self.mode, self.low_octave, self.high_octave)

	def pattern (self) -> typing.List[str]:

		"""The seed pitches for this mood, in scale order."""

		in_octave = [t for t in self.scale() if murmur.notes.octave(t) == self.seed_octave]

		return [in_octave[d] for d in self.seed_degrees if d < len(in_octave)]


MOODS: typing.Dict[str, Mood] = {
	"calm": Mood("C", "major_pentatonic"),
	"dreamy": Mood("F", "lydian"),
	"melancholy": Mood("A", "aeolian"),
	"mysterious": Mood("D", "dorian", seed_degrees=(0, 3, 4)),
	"hopeful": Mood("G", "mixolydian"),
	"dark": Mood("E", "phrygian", low_octave=1, high_octave=4, seed_octave=3),
	"ethereal": Mood("D", "whole_tone", low_octave=3, high_octave=6, seed_degrees=(0, 2, 4)),
	"serene": Mood("Eb", "major_pentatonic", low_octave=3),
}


def get_mood (name: str) -> Mood:

	if name not in MOODS:
		raise KeyError(f"Unknown mood {name!r}. Available: {sorted(MOODS)}")

	return MOODS[name]
