"""Shared start/stop/dispose discipline for generators.

A generator moves through four states::

	IDLE --start--> ACTIVE --stop--> IDLE --dispose--> QUIESCING --grace--> FINALIZED

Shutdown happens in two phases.  Stopping cancels every pending timer and
asks the voices to release their notes; finalizing (after a fixed grace
window) actually disposes the voices.  Synthesis voices may still be
sounding a release tail when they are told to stop, so the grace window
is what separates "please be quiet" from "you no longer exist".
"""

import dataclasses
import enum
import logging
import typing

import murmur.clock
import murmur.timers


logger = logging.getLogger(__name__)


class State (enum.Enum):

	IDLE = "idle"
	ACTIVE = "active"
	QUIESCING = "quiescing"
	FINALIZED = "finalized"


def release (resource: typing.Any, *methods: str, label: str = "resource") -> bool:

	"""Call the first of ``methods`` that ``resource`` exposes, never raising.

	Any exception from the call is logged and swallowed so that one broken
	voice or effect cannot abort the release of the others.

	Returns:
		True if a release method was found (whether or not it succeeded).

	Example:
		```python
		murmur.lifecycle.release(voice, "release_all", "trigger_release", label="pad")
		```
	"""

	if resource is None:
		return False

	for name in methods:

		method = getattr(resource, name, None)

		if not callable(method):
			continue

		try:
			method()
		except Exception as exc:
			logger.warning(f"Failed to {name} {label}: {exc}")

		return True

	return False


@dataclasses.dataclass
class Rig:

	"""The voices, effects and modulation sources one generator owns."""

	voices: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
	effects: typing.List[typing.Any] = dataclasses.field(default_factory=list)
	modulators: typing.List[typing.Any] = dataclasses.field(default_factory=list)

	def release_voices (self) -> None:

		"""Ask every voice to let its notes ring out.  Voices that cannot are skipped."""

		for name, voice in self.voices.items():
			release(voice, "release_all", "trigger_release", label=f"voice {name!r}")

	def stop_modulators (self) -> None:

		"""Halt every modulation source without freeing it, so a restart can resume it."""

		for modulator in self.modulators:
			release(modulator, "stop", label="modulator")

	def dispose (self) -> None:

		"""Free everything, modulation sources first.

		Modulators may still be writing into a voice's parameters while it
		releases, so they go before the voices, and effects go last.
		"""

		for modulator in self.modulators:
			release(modulator, "stop", label="modulator")
			release(modulator, "dispose", label="modulator")

		for name, voice in self.voices.items():
			release(voice, "dispose", label=f"voice {name!r}")

		for effect in self.effects:
			release(effect, "dispose", label=f"effect {getattr(effect, 'name', type(effect).__name__)!r}")

		self.modulators.clear()
		self.voices.clear()
		self.effects.clear()


class Lifecycle:

	"""
	The state machine and timer arena one generator owns.

	The controller never touches voices itself.  Callers do their own work
	around the transitions, which report whether anything happened so that
	redundant calls can be silent no-ops.
	"""

	def __init__ (self, clock: murmur.clock.Clock, name: str, grace_window: float) -> None:

		self.clock = clock
		self.name = name
		self.grace_window = grace_window
		self.state = State.IDLE
		self.timers = murmur.timers.TimerSet(clock)

		# Set while QUIESCING: the clock time at which finalization runs.
		self.deadline: typing.Optional[float] = None
		self._finalizer_handle: typing.Optional[murmur.clock.Cancellable] = None

	@property
	def active (self) -> bool:
		return self.state is State.ACTIVE

	def activate (self) -> bool:

		"""Enter ACTIVE.  Returns False if already active.

		Starting again during the grace window abandons the pending
		finalization: the voices have not been disposed yet and are reused.
		"""

		if self.state is State.ACTIVE:
			logger.debug(f"{self.name}: start ignored, already active")
			return False

		if self.state is State.QUIESCING:
			self._cancel_finalization()
			logger.debug(f"{self.name}: restarted during grace window")

		self.state = State.ACTIVE
		return True

	def deactivate (self) -> bool:

		"""Leave ACTIVE for IDLE, cancelling every pending timer first."""

		if self.state is not State.ACTIVE:
			logger.debug(f"{self.name}: stop ignored, state is {self.state.value}")
			return False

		self.timers.cancel_all()
		self.state = State.IDLE
		return True

	def quiesce (self, finalizer: typing.Callable[[], None]) -> bool:

		"""Start the grace window; ``finalizer`` runs when it expires."""

		if self.state in (State.QUIESCING, State.FINALIZED):
			logger.debug(f"{self.name}: dispose ignored, state is {self.state.value}")
			return False

		self.timers.cancel_all()
		self.state = State.QUIESCING
		self.deadline = self.clock.time() + self.grace_window
		self._finalizer_handle = self.clock.call_later(self.grace_window, self._finalize, finalizer)

		logger.debug(f"{self.name}: finalizing in {self.grace_window:.1f}s")
		return True

	def finalize_now (self, finalizer: typing.Callable[[], None]) -> None:

		"""Run ``finalizer`` immediately and enter FINALIZED."""

		self.timers.cancel_all()
		self._cancel_finalization()
		self._finalize(finalizer)

	def _finalize (self, finalizer: typing.Callable[[], None]) -> None:

		self._finalizer_handle = None
		self.deadline = None

		try:
			finalizer()
		finally:
			self.state = State.FINALIZED

		logger.debug(f"{self.name}: finalized")

	def _cancel_finalization (self) -> None:

		if self._finalizer_handle is not None:
			self._finalizer_handle.cancel()
			self._finalizer_handle = None

		self.deadline = None
