import typing

import murmur.notes


INTERVAL_DEFINITIONS: typing.Dict[str, typing.List[int]] = {
	"dorian_mode": [0, 2, 3, 5, 7, 9, 10],
	"harmonic_minor": [0, 2, 3, 5, 7, 8, 11],
	"locrian_mode": [0, 1, 3, 5, 6, 8, 10],
	"lydian": [0, 2, 4, 6, 7, 9, 11],
	"major_ionian": [0, 2, 4, 5, 7, 9, 11],
	"major_pentatonic": [0, 2, 4, 7, 9],
	"major_triad": [0, 4, 7],
	"melodic_minor": [0, 2, 3, 5, 7, 9, 11],
	"minor_pentatonic": [0, 3, 5, 7, 10],
	"minor_triad": [0, 3, 7],
	"mixolydian": [0, 2, 4, 5, 7, 9, 10],
	"natural_minor": [0, 2, 3, 5, 7, 8, 10],
	"phrygian_mode": [0, 1, 3, 5, 7, 8, 10],
	"sus2": [0, 2, 7],
	"whole_tone": [0, 2, 4, 6, 8, 10],
}


# Mode names accepted by build_scale(), mapped to their interval sets.
MODE_MAP: typing.Dict[str, str] = {
	"ionian": "major_ionian",
	"major": "major_ionian",
	"dorian": "dorian_mode",
	"phrygian": "phrygian_mode",
	"lydian": "lydian",
	"mixolydian": "mixolydian",
	"aeolian": "natural_minor",
	"minor": "natural_minor",
	"locrian": "locrian_mode",
	"harmonic_minor": "harmonic_minor",
	"melodic_minor": "melodic_minor",
	"major_pentatonic": "major_pentatonic",
	"minor_pentatonic": "minor_pentatonic",
	"whole_tone": "whole_tone",
}


def get_intervals (name: str) -> typing.List[int]:

	"""
	Return a named interval list from the registry.
	"""

	if name not in INTERVAL_DEFINITIONS:
		raise ValueError(f"Unknown interval set: {name}")

	return list(INTERVAL_DEFINITIONS[name])


def scale_pitch_classes (key_pc: int, mode: str = "ionian") -> typing.List[int]:

	"""
	Return the pitch classes (0–11) that belong to a key and mode.

	Example:
		```python
		scale_pitch_classes(9, "aeolian")  # → [9, 11, 0, 2, 4, 5, 7]
		```
	"""

	if mode not in MODE_MAP:
		raise ValueError(f"Unknown mode '{mode}'. Available: {sorted(MODE_MAP)}")

	return [(key_pc + i) % 12 for i in get_intervals(MODE_MAP[mode])]


def build_scale (key: str, mode: str, low_octave: int, high_octave: int) -> typing.List[str]:

	"""Build an ascending Scale of pitch tokens.

	Starts on ``key`` in ``low_octave`` and climbs through the mode up to
	and including the tonic of ``high_octave``.

	Parameters:
		key: Root note name (``"C"``, ``"F#"``, ``"Bb"``).
		mode: A key of ``MODE_MAP``.
		low_octave: Octave of the first token.
		high_octave: Octave of the closing tonic.

	Example:
		```python
		build_scale("C", "major_pentatonic", 4, 5)
		# → ["C4", "D4", "E4", "G4", "A4", "C5"]
		```
	"""

	if key not in murmur.notes.NOTE_NAME_TO_PC:
		raise ValueError(f"Unknown key name: {key!r}. Expected e.g. 'C', 'F#', 'Bb'.")

	if high_octave < low_octave:
		raise ValueError(f"high_octave ({high_octave}) must be >= low_octave ({low_octave})")

	root = murmur.notes.note_number(f"{key}{low_octave}")
	top = murmur.notes.note_number(f"{key}{high_octave}")
	key_pc = murmur.notes.NOTE_NAME_TO_PC[key]
	pcs = set(scale_pitch_classes(key_pc, mode))

	return [murmur.notes.note_name(n) for n in range(root, top + 1) if n % 12 in pcs]
