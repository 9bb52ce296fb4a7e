import logging
import typing


logger = logging.getLogger(__name__)

T = typing.TypeVar("T")


class Registry (typing.Generic[T]):

	"""Named factories for one kind of strategy (instruments or engines).

	Each ``create()`` builds a fresh object, so two generators never share
	strategy state.

	Example:
		```python
		registry.register("piano", lambda: Instrument("Piano", program=0, note_duration=1.5, spacing=0.8))
		piano = registry.create("piano")
		```
	"""

	def __init__ (self, kind: str) -> None:

		self.kind = kind
		self._factories: typing.Dict[str, typing.Callable[[], T]] = {}

	def register (self, key: str, factory: typing.Callable[[], T]) -> None:

		if key in self._factories:
			logger.debug(f"Replacing {self.kind} {key!r}")

		self._factories[key] = factory

	def create (self, key: str) -> T:

		if key not in self._factories:
			raise KeyError(f"Unknown {self.kind} {key!r}. Available: {self.available()}")

		return self._factories[key]()

	def available (self) -> typing.List[str]:
		return sorted(self._factories)

	def info (self, key: str) -> typing.Dict[str, typing.Any]:

		"""Display details for one entry: its key, name and description."""

		item = self.create(key)

		return {
			"key": key,
			"name": getattr(item, "name", key),
			"description": getattr(item, "description", ""),
		}

	def __contains__ (self, key: object) -> bool:
		return key in self._factories

	def __len__ (self) -> int:
		return len(self._factories)
