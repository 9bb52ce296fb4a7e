"""OSC control surface for realtime parameter changes.

The server listens on a UDP port (default 9000) and applies incoming
messages to the running managers.  Every accepted change is echoed to a
target host/port (default 127.0.0.1:9001) so control surfaces can keep
their displays in step.

Receive Handlers
────────────────
- ``/density <float>``: Ambient density (1–10)
- ``/reverb <float>``: Ambient reverb wet mix (0–1)
- ``/melody/reverb <float>``: Melody reverb wet mix (0–1)
- ``/melody/frequency <int>``: Melodic frequency (1–10)
- ``/melody/volume <float>``: Melody volume in dB
- ``/melody/enabled <int>``: Turn the melody on (1) or off (0)
- ``/melody/slots <int>``: Melody lines playing at once (1–3)
- ``/volume <float>``: Master volume (0–1)
- ``/mood <string>``: Switch mood
- ``/engine <string>``: Switch ambient engine
- ``/instrument <string>``: Switch melodic instrument
- ``/layer/<key> <int>``: Turn an environment layer on (1) or off (0),
  one address per layer (``/layer/ocean_waves``, ``/layer/thunderstorm``, ...)

Invalid arguments are logged and ignored.
"""

import asyncio
import functools
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

if typing.TYPE_CHECKING:
	from murmur.graph import MasterOutput
	from murmur.manager import AmbientMusicManager, EnvironmentManager, MelodyManager


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client wired to the ambient, melody and environment managers."""

	def __init__ (
		self,
		ambient: "AmbientMusicManager",
		melody: "MelodyManager",
		master: "MasterOutput",
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1",
		environment: typing.Optional["EnvironmentManager"] = None
	) -> None:

		self._ambient = ambient
		self._melody = melody
		self._master = master
		self._environment = environment
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/density", self._handle_density)
		self._dispatcher.map("/reverb", self._handle_reverb)
		self._dispatcher.map("/melody/reverb", self._handle_melody_reverb)
		self._dispatcher.map("/melody/frequency", self._handle_melody_frequency)
		self._dispatcher.map("/melody/volume", self._handle_melody_volume)
		self._dispatcher.map("/melody/enabled", self._handle_melody_enabled)
		self._dispatcher.map("/melody/slots", self._handle_melody_slots)
		self._dispatcher.map("/volume", self._handle_volume)
		self._dispatcher.map("/mood", self._handle_mood)
		self._dispatcher.map("/engine", self._handle_engine)
		self._dispatcher.map("/instrument", self._handle_instrument)

		if environment is not None:
			for key in environment.registry.available():
				self._dispatcher.map(f"/layer/{key}", functools.partial(self._handle_layer, key))

	@property
	def dispatcher (self) -> pythonosc.dispatcher.Dispatcher:
		return self._dispatcher

	async def start (self) -> None:

		"""Start the OSC server and client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")

	async def stop (self) -> None:

		"""Stop the OSC server."""

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")

	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")

	# Handlers

	def _number (self, address: str, args: typing.Tuple[typing.Any, ...], cast: typing.Callable[[typing.Any], typing.Any] = float) -> typing.Optional[typing.Any]:

		if not args:
			logger.warning(f"OSC {address}: missing argument")
			return None

		try:
			return cast(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC {address} argument: {args[0]!r}")
			return None

	def _handle_density (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args)

		if value is not None:
			self._ambient.update_config(density=value)
			self.send(address, value)

	def _handle_reverb (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args)

		if value is not None:
			self._ambient.update_config(reverb_amount=value)
			self.send(address, value)

	def _handle_melody_reverb (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args)

		if value is not None:
			self._melody.update_reverb_amount(value)
			self.send(address, value)

	def _handle_melody_frequency (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args, int)

		if value is not None:
			self._melody.set_frequency(value)
			self.send(address, value)

	def _handle_melody_volume (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args)

		if value is not None:
			self._melody.set_volume(value)
			self.send(address, value)

	def _handle_melody_enabled (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args, int)

		if value is not None:
			self._melody.set_enabled(bool(value))
			self.send(address, value)

	def _handle_melody_slots (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args, int)

		if value is not None:
			self.send(address, self._melody.set_slot_count(value))

	def _handle_volume (self, address: str, *args: typing.Any) -> None:

		value = self._number(address, args)

		if value is not None:
			self._master.volume.value = value
			self.send(address, value)

	def _handle_choice (self, address: str, args: typing.Tuple[typing.Any, ...], apply: typing.Callable[[str], typing.Any]) -> None:

		if not args:
			logger.warning(f"OSC {address}: missing argument")
			return

		key = str(args[0])

		try:
			apply(key)
		except KeyError as exc:
			logger.warning(f"OSC {address}: {exc}")
			return

		self.send(address, key)

	def _handle_mood (self, address: str, *args: typing.Any) -> None:
		self._handle_choice(address, args, self._ambient.set_mood)

	def _handle_engine (self, address: str, *args: typing.Any) -> None:
		self._handle_choice(address, args, self._ambient.set_engine)

	def _handle_instrument (self, address: str, *args: typing.Any) -> None:
		self._handle_choice(address, args, self._melody.set_instrument)

	def _handle_layer (self, key: str, address: str, *args: typing.Any) -> None:

		value = self._number(address, args, int)

		if value is not None and self._environment is not None:
			self._environment.set_enabled(key, bool(value))
			self.send(address, int(bool(value)))
