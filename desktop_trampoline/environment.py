"""Reduce the process environment to the variables the desktop app may see."""

import logging
from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)


def environ_entries(environ: Mapping[str, str]) -> list[str]:
	"""Render a mapping such as ``os.environ`` as ``NAME=VALUE`` strings, in iteration order."""
	return [f'{name}={value}' for name, value in environ.items()]


class EnvironmentFilter:
	"""Allow-list filter over ``NAME=VALUE`` environment entries.

	Only the name is compared; values are never inspected. An entry matches an
	allowed name ``N`` when it starts with ``N`` immediately followed by ``=``:

	    DESKTOP_USERNAME=alice        matches DESKTOP_USERNAME
	    DESKTOP_USERNAME_OTHER=alice  does not
	"""

	def __init__(self, allowed_names: Iterable[str]) -> None:
		self._allowed_names = tuple(allowed_names)

	@property
	def allowed_names(self) -> tuple[str, ...]:
		return self._allowed_names

	def matches(self, entry: str) -> bool:
		for name in self._allowed_names:
			if entry.startswith(name) and entry[len(name) : len(name) + 1] == '=':
				return True
		return False

	def filter(self, entries: Iterable[str]) -> list[str]:
		"""Return the matching entries in their original order, duplicates included."""
		selected = [entry for entry in entries if self.matches(entry)]
		logger.debug(f'Forwarding {len(selected)} environment variable(s)')
		return selected
