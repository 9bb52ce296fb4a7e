import argparse
import asyncio
import logging
import os
import random
import signal
import typing

import yaml

import murmur.ambient
import murmur.engines
import murmur.environments
import murmur.instruments
import murmur.manager
import murmur.melodic
import murmur.midi_utils
import murmur.moods
import murmur.osc


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "murmur.yaml"


def load_config (config_path: str = DEFAULT_CONFIG_PATH) -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def build_parser () -> argparse.ArgumentParser:

	parser = argparse.ArgumentParser(prog="murmur", description="Endless generative ambient music over MIDI.")

	parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config file (default: %(default)s)")
	parser.add_argument("--device", help="MIDI output port name")
	parser.add_argument("--virtual", action="store_true", default=None, help="Create a virtual MIDI output port")
	parser.add_argument("--engine", help="Ambient engine key")
	parser.add_argument("--instrument", help="Melodic instrument key")
	parser.add_argument("--mood", help="Mood key, or 'random' to change mood periodically")
	parser.add_argument("--density", type=float, help="Ambient density, 1-10")
	parser.add_argument("--reverb", type=float, help="Ambient reverb wet mix, 0-1")
	parser.add_argument("--frequency", type=int, help="Melodic frequency, 1-10")
	parser.add_argument("--slots", type=int, help=f"Melody lines playing at once, 1-{murmur.manager.MAX_SLOTS}")
	parser.add_argument("--no-melody", action="store_true", help="Play the ambient bed only")
	parser.add_argument("--layer", action="append", metavar="KEY", help="Environment layer to play (repeatable)")
	parser.add_argument("--osc", action="store_true", default=None, help="Enable the OSC control surface")
	parser.add_argument("--osc-port", type=int, help="OSC receive port")
	parser.add_argument("--seed", type=int, help="Random seed for repeatable output")
	parser.add_argument("--list", action="store_true", help="List engines, instruments, moods and MIDI outputs, then exit")
	parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

	return parser


def resolve_settings (config: dict, args: argparse.Namespace) -> typing.Dict[str, typing.Any]:

	"""Merge the YAML config with command-line overrides (the command line wins)."""

	midi = config.get('midi', {}) or {}
	ambient = config.get('ambient', {}) or {}
	melody = config.get('melody', {}) or {}
	osc = config.get('osc', {}) or {}

	def pick (override: typing.Any, value: typing.Any) -> typing.Any:
		return value if override is None else override

	return {
		'device': pick(args.device, midi.get('device_name')),
		'virtual': bool(pick(args.virtual, midi.get('virtual', False))),
		'engine': pick(args.engine, ambient.get('engine', 'standard')),
		'mood': pick(args.mood, ambient.get('mood', 'calm')),
		'density': pick(args.density, ambient.get('density', 5)),
		'reverb': pick(args.reverb, ambient.get('reverb', 0.5)),
		'mood_cycle_minutes': ambient.get('random_mood_minutes', murmur.manager.DEFAULT_CYCLE_MINUTES),
		'melody': not args.no_melody and melody.get('enabled', True),
		'instrument': pick(args.instrument, melody.get('instrument', 'piano')),
		'frequency': pick(args.frequency, melody.get('frequency', murmur.melodic.DEFAULT_FREQUENCY)),
		'melody_volume': melody.get('volume', -5.0),
		'melody_reverb': melody.get('reverb', 0.5),
		'slots': pick(args.slots, melody.get('slots', 1)),
		'instrument_cycle_minutes': melody.get('random_minutes'),
		'layers': list(pick(args.layer, config.get('layers', [])) or []),
		'osc': bool(pick(args.osc, osc.get('enabled', False))),
		'osc_receive_port': pick(args.osc_port, osc.get('receive_port', 9000)),
		'osc_send_port': osc.get('send_port', 9001),
		'osc_send_host': osc.get('send_host', '127.0.0.1'),
		'master_volume': (config.get('master', {}) or {}).get('volume', 0.8),
		'seed': pick(args.seed, config.get('seed')),
	}


def print_catalogue () -> None:

	engines = murmur.engines.default_registry()
	instruments = murmur.instruments.default_registry()
	layers = murmur.environments.default_registry()

	print("\nEngines:")
	for key in engines.available():
		info = engines.info(key)
		print(f"  {key:<20} {info['name']} - {info['description']}")

	print("\nInstruments:")
	for key in instruments.available():
		info = instruments.info(key)
		print(f"  {key:<20} {info['name']} - {info['description']}")

	print("\nLayers:")
	for key in layers.available():
		info = layers.info(key)
		print(f"  {key:<20} {info['name']} - {info['description']}")

	print("\nMoods:")
	for key in sorted(murmur.moods.MOODS):
		mood = murmur.moods.MOODS[key]
		print(f"  {key:<20} {mood.key} {mood.mode}")

	print("\nMIDI outputs:")
	for name in murmur.midi_utils.list_output_devices():
		print(f"  {name}")

	print()


def apply_mood (ambient: murmur.manager.AmbientMusicManager, mood: str) -> str:

	"""Set the starting mood.  \"random\" picks one at random.  Returns the mood applied."""

	if mood == 'random':
		return ambient.change_to_random_mood()

	ambient.set_mood(mood)

	return mood


async def run (settings: typing.Dict[str, typing.Any]) -> None:

	"""
	Play until SIGINT or SIGTERM, then stop and dispose everything.
	"""

	loop = asyncio.get_running_loop()
	rng = random.Random(settings['seed'])

	_, port = murmur.midi_utils.select_output_device(settings['device'], virtual=settings['virtual'])

	destinations = murmur.manager.build_destinations(port, reverb_amount=settings['reverb'], volume=settings['master_volume'])

	melody = murmur.manager.MelodyManager(
		loop,
		destinations,
		rng=rng,
		frequency=settings['frequency'],
		config=murmur.melodic.MelodicConfig(volume=settings['melody_volume'], reverb_amount=settings['melody_reverb']),
		slots=settings['slots']
	)

	def _follow_mood (key: str) -> None:
		mood = murmur.moods.get_mood(key)
		melody.set_scale_and_pattern(mood.scale(), mood.pattern())

	ambient = murmur.manager.AmbientMusicManager(
		loop,
		destinations,
		rng=rng,
		config=murmur.ambient.AmbientConfig(density=settings['density'], reverb_amount=settings['reverb']),
		on_mood=_follow_mood
	)

	random_mood = settings['mood'] == 'random'

	ambient.set_engine(settings['engine'])
	apply_mood(ambient, settings['mood'])
	ambient.start()

	if random_mood:
		ambient.start_random_mood_cycle(settings['mood_cycle_minutes'])

	if settings['melody']:

		melody.set_instrument(settings['instrument'])

		mood = murmur.moods.get_mood(ambient.mood)
		melody.start(mood.scale(), mood.pattern())

		if settings['instrument_cycle_minutes']:
			melody.start_random_cycle(settings['instrument_cycle_minutes'])

	environment = murmur.manager.EnvironmentManager(loop, destinations, rng=rng)

	for key in settings['layers']:
		environment.enable(key)

	osc_server: typing.Optional[murmur.osc.OscServer] = None

	if settings['osc']:
		osc_server = murmur.osc.OscServer(
			ambient,
			melody,
			destinations.master_volume,
			environment=environment,
			receive_port=settings['osc_receive_port'],
			send_port=settings['osc_send_port'],
			send_host=settings['osc_send_host']
		)
		await osc_server.start()

	logger.info("Playing. Press Ctrl+C to stop.")

	stop_event = asyncio.Event()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, stop_event.set)

	await stop_event.wait()

	logger.info("Stopping...")

	if osc_server is not None:
		await osc_server.stop()

	ambient.dispose()
	environment.dispose()
	melody.dispose()

	# Let the melody's grace window run out so its voice is freed before the port closes.
	await asyncio.sleep(murmur.melodic.GRACE_WINDOW)

	if port is not None:
		port.close()


def main () -> None:

	"""
	Main entry point for the murmur application.
	"""

	args = build_parser().parse_args()

	logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

	if args.list:
		print_catalogue()
		return

	logger.info("Murmur starting...")

	settings = resolve_settings(load_config(args.config), args)

	asyncio.run(run(settings))


if __name__ == "__main__":
	main()
