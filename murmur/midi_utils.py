import logging
import typing

import mido


logger = logging.getLogger(__name__)


DEFAULT_VIRTUAL_PORT = "murmur"


def list_output_devices () -> typing.List[str]:

	"""Names of the MIDI output ports mido can see (empty if the backend fails)."""

	try:
		return list(mido.get_output_names())
	except Exception as e:
		logger.error(f"Could not list MIDI outputs: {e}")
		return []


def _open (name: str, virtual: bool = False) -> typing.Any:

	port = mido.open_output(name, virtual=virtual) if virtual else mido.open_output(name)
	logger.info(f"Playing through {'virtual ' if virtual else ''}MIDI output '{name}'")

	return port


def select_output_device (device_name: typing.Optional[str] = None, virtual: bool = False) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Select and open the MIDI output the engine plays through.

	- With ``virtual=True`` a new virtual port is created (named
	  ``device_name``, or ``"murmur"``) for a synth or DAW to connect to.
	- With ``device_name`` that port is opened, and an error is logged if
	  it does not exist.
	- Otherwise a single available port is used automatically; with several
	  the user is asked to pick one on the console.

	Returns:
		A tuple of (device_name, midi_out) or (None, None) on failure, in
		which case the engine still runs but its output is discarded.
	"""

	try:
		if virtual:
			name = device_name or DEFAULT_VIRTUAL_PORT
			return name, _open(name, virtual=True)

		ports = list_output_devices()

		if not ports:
			logger.error("No MIDI outputs to play through. Try --virtual to create a port.")
			return None, None

		if device_name is None:
			device_name = ports[0] if len(ports) == 1 else _ask_for_port(ports)

		elif device_name not in ports:
			logger.error(f"No MIDI output called '{device_name}' (have: {', '.join(ports)})")
			return None, None

		return device_name, _open(device_name)

	except Exception as e:
		logger.error(f"Could not open MIDI output: {e}")
		return None, None


def _ask_for_port (ports: typing.List[str]) -> str:

	"""Ask on the console which of several ports to use."""

	listing = "\n".join(f"  [{number}] {name}" for number, name in enumerate(ports, 1))
	print(f"\nMIDI outputs:\n{listing}\n")

	while True:
		answer = input(f"Port number [1-{len(ports)}]: ").strip()

		if answer.isdigit() and 1 <= int(answer) <= len(ports):
			chosen = ports[int(answer) - 1]
			print(f"\nNext time, pass --device \"{chosen}\" to skip this question.\n")
			return chosen

		print("That is not one of the listed ports.")
