"""Request and response messages exchanged with the desktop app.

A request is, in order:

1. the argument count, as a decimal string
2. one string per argument
3. the environment variable count, as a decimal string
4. one ``NAME=VALUE`` string per forwarded variable
5. the raw bytes of stdin, unframed, followed by a single NUL byte

Items 1-4 are NUL-terminated framed strings. The response is two frames,
stdout then stderr, without NUL terminators.
"""

from dataclasses import dataclass, field

from desktop_trampoline.framing import encode_frame, encode_string, to_bytes


@dataclass
class TrampolineRequest:
	"""One forwarded invocation."""

	arguments: list[str | bytes] = field(default_factory=list)
	environment: list[str | bytes] = field(default_factory=list)
	stdin: bytes = b''

	def frames(self) -> list[tuple[str, bytes]]:
		"""Encoded frames for items 1-4, each labelled with what it carries."""
		frames = [('number of arguments', encode_string(str(len(self.arguments))))]
		frames.extend(('argument', encode_string(argument)) for argument in self.arguments)
		frames.append(('number of environment variables', encode_string(str(len(self.environment)))))
		frames.extend(('environment variable', encode_string(entry)) for entry in self.environment)
		return frames

	def environment_dict(self) -> dict[str, str]:
		"""Forwarded variables as a mapping; later duplicates win."""
		result = {}
		for entry in self.environment:
			name, _, value = to_bytes(entry).decode('utf-8', 'replace').partition('=')
			result[name] = value
		return result


@dataclass
class TrampolineResponse:
	"""Output captured by the desktop app for the invocation."""

	stdout: bytes = b''
	stderr: bytes = b''

	def to_wire(self) -> bytes:
		return encode_frame(self.stdout) + encode_frame(self.stderr)
