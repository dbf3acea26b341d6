"""Error types raised by the trampoline client and reference server."""


class TrampolineError(Exception):
	"""Base class for every failure that aborts a trampoline invocation.

	``step`` names what the trampoline was doing when it failed and is used as
	the prefix of the diagnostic line printed to stderr.
	"""

	def __init__(self, step: str, detail: str | None = None) -> None:
		self.step = step
		self.detail = detail
		super().__init__(f'{step}: {detail}' if detail else step)


class ConfigurationError(TrampolineError):
	"""Raised when required configuration (the server port) is missing or invalid."""

	pass


class TrampolineConnectionError(TrampolineError):
	"""Raised when the loopback connection to the server cannot be established."""

	pass


class ProtocolError(TrampolineError):
	"""Raised when a frame violates the wire contract (e.g. exceeds capacity)."""

	pass


class TrampolineIOError(TrampolineError):
	"""Raised when reading or writing the socket or a local stream fails."""

	pass
