"""Pitch tokens.

Scales, patterns and phrases are sequences of pitch tokens: a note name
followed by an octave number, e.g. ``"C4"``, ``"F#3"``, ``"Bb2"``.
Convention: **C4 = 60** (Middle C), the same as most DAWs.

Module-level helpers:
- `note_number(token)`: Token (or MIDI int) to MIDI note number.
- `note_name(number)`: MIDI note number to a sharp-spelled token.
- `octave(token)`: The octave of a token.
- `transpose_octave(token, shift)`: Same pitch class, octave moved by ``shift``.
"""

import re
import typing


NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

PC_TO_NOTE_NAME: typing.List[str] = [
	"C",
	"C#",
	"D",
	"D#",
	"E",
	"F",
	"F#",
	"G",
	"G#",
	"A",
	"A#",
	"B",
]

Pitch = typing.Union[str, int]

_TOKEN_RE = re.compile(r"^([A-G][#b]?)(-?\d+)$")


def _split (token: str) -> typing.Tuple[str, int]:

	match = _TOKEN_RE.match(token.strip())

	if match is None or match.group(1) not in NOTE_NAME_TO_PC:
		raise ValueError(f"Unknown pitch token: {token!r}. Expected e.g. 'C4', 'F#3', 'Bb2'.")

	return match.group(1), int(match.group(2))


def note_number (pitch: Pitch) -> int:

	"""Return the MIDI note number of a pitch token.

	Integers are passed through unchanged so callers may mix tokens and
	raw MIDI numbers.

	Example:
		```python
		note_number("C4")   # → 60
		note_number("A4")   # → 69
		note_number("Bb2")  # → 46
		```
	"""

	if isinstance(pitch, int):
		return pitch

	name, octave_number = _split(pitch)
	number = (octave_number + 1) * 12 + NOTE_NAME_TO_PC[name]

	if not 0 <= number <= 127:
		raise ValueError(f"Pitch {pitch!r} is outside the MIDI range")

	return number


def note_name (number: int) -> str:

	"""Return the sharp-spelled token for a MIDI note number (60 → ``"C4"``)."""

	return f"{PC_TO_NOTE_NAME[number % 12]}{number // 12 - 1}"


def octave (pitch: Pitch) -> int:

	"""Return the octave number of a pitch."""

	if isinstance(pitch, int):
		return pitch // 12 - 1

	return _split(pitch)[1]


def transpose_octave (pitch: str, shift: int) -> str:

	"""Move a token by whole octaves, keeping its spelling."""

	name, octave_number = _split(pitch)
	return f"{name}{octave_number + shift}"
