"""Trampoline session - one synchronous round trip to the desktop app.

The session owns the socket from ``connect()`` until ``close()``. Steps must run
in order; each one moves the session to the next state, and any failure moves
it to ERROR. Using the session as a context manager guarantees the socket is
closed on every exit path.
"""

import logging
import socket
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import BinaryIO

from desktop_trampoline.config import TrampolineConfig
from desktop_trampoline.errors import TrampolineConnectionError, TrampolineError, TrampolineIOError
from desktop_trampoline.framing import NUL, read_frame
from desktop_trampoline.protocol import TrampolineRequest, TrampolineResponse
from desktop_trampoline.stdin import StdinReader

logger = logging.getLogger(__name__)

Connector = Callable[[tuple[str, int]], socket.socket]


class SessionState(str, Enum):
	START = 'start'
	CONNECTED = 'connected'
	REQUEST_SENT = 'request_sent'
	STDIN_STREAMED = 'stdin_streamed'
	STDOUT_RECEIVED = 'stdout_received'
	STDERR_RECEIVED = 'stderr_received'
	DONE = 'done'
	ERROR = 'error'


def relay(payload: bytes, sink: BinaryIO, step: str) -> None:
	"""Copy ``payload`` to a local binary stream exactly as received."""
	try:
		sink.write(payload)
		sink.flush()
	except OSError as e:
		raise TrampolineIOError(step, str(e)) from e


class TrampolineSession:
	"""Forwards one invocation to the desktop app and collects its output."""

	def __init__(self, config: TrampolineConfig, connector: Connector | None = None) -> None:
		self.config = config
		self.state = SessionState.START
		self._connector = connector or socket.create_connection
		self._sock: socket.socket | None = None

	def __enter__(self) -> 'TrampolineSession':
		return self

	def __exit__(self, exc_type, exc_value, traceback) -> None:
		if exc_type is not None:
			self.state = SessionState.ERROR
		self.close()

	@contextmanager
	def _transition(self, expected: SessionState, target: SessionState) -> Iterator[None]:
		if self.state is not expected:
			raise RuntimeError(f'Cannot move to {target.value} from {self.state.value}')
		try:
			yield
		except BaseException:
			self.state = SessionState.ERROR
			raise
		self.state = target

	def _send(self, data: bytes, step: str) -> None:
		assert self._sock is not None
		try:
			self._sock.sendall(data)
		except OSError as e:
			raise TrampolineIOError(step, str(e)) from e

	def _receive(self, step: str) -> bytes:
		assert self._sock is not None
		try:
			return read_frame(self._sock, self.config.receive_capacity)
		except OSError as e:
			raise TrampolineIOError(step, str(e)) from e
		except TrampolineError as e:
			# Keep the error type but say which response frame failed.
			raise type(e)(step, str(e)) from e

	def connect(self) -> None:
		host, port = self.config.host, self.config.port
		with self._transition(SessionState.START, SessionState.CONNECTED):
			logger.debug(f'Connecting to {host}:{port}')
			try:
				self._sock = self._connector((host, port))
			except OSError as e:
				raise TrampolineConnectionError(f"Couldn't connect to {host}:{port}", str(e)) from e

	def send_request(self, request: TrampolineRequest) -> None:
		"""Send the argument and environment frames, in protocol order."""
		with self._transition(SessionState.CONNECTED, SessionState.REQUEST_SENT):
			for label, frame in request.frames():
				self._send(frame, f"Couldn't send {label}")
			logger.debug(f'Sent {len(request.arguments)} argument(s), {len(request.environment)} environment variable(s)')

	def stream_stdin(self, reader: StdinReader) -> int:
		"""Forward whatever stdin has right now, then the NUL terminator.

		Returns the number of stdin bytes forwarded. A read error before any
		byte was forwarded means there is no stdin; after that it is fatal.
		"""
		total = 0
		with self._transition(SessionState.REQUEST_SENT, SessionState.STDIN_STREAMED):
			while True:
				try:
					chunk = reader.try_read()
				except OSError as e:
					if total == 0:
						logger.debug(f'No stdin content found: {e}')
						break
					raise TrampolineIOError('Error reading stdin data', str(e)) from e

				if not chunk:
					break

				self._send(chunk, "Couldn't send stdin data")
				total += len(chunk)

			self._send(NUL, "Couldn't send stdin terminator")
			logger.debug(f'Forwarded {total} byte(s) of stdin')
		return total

	def receive_stdout(self, sink: BinaryIO | None = None) -> bytes:
		with self._transition(SessionState.STDIN_STREAMED, SessionState.STDOUT_RECEIVED):
			payload = self._receive("Couldn't read stdout from socket")
			if sink is not None:
				relay(payload, sink, "Couldn't write stdout")
		return payload

	def receive_stderr(self, sink: BinaryIO | None = None) -> bytes:
		with self._transition(SessionState.STDOUT_RECEIVED, SessionState.STDERR_RECEIVED):
			payload = self._receive("Couldn't read stderr from socket")
			if sink is not None:
				relay(payload, sink, "Couldn't write stderr")
		return payload

	def close(self) -> None:
		if self._sock is not None:
			try:
				self._sock.close()
			finally:
				self._sock = None
		if self.state is SessionState.STDERR_RECEIVED:
			self.state = SessionState.DONE

	def run(
		self,
		request: TrampolineRequest,
		reader: StdinReader,
		stdout: BinaryIO | None = None,
		stderr: BinaryIO | None = None,
	) -> TrampolineResponse:
		"""Perform the whole round trip, relaying output to the given sinks."""
		with self:
			self.connect()
			self.send_request(request)
			self.stream_stdin(reader)
			out = self.receive_stdout(stdout)
			err = self.receive_stderr(stderr)
		return TrampolineResponse(stdout=out, stderr=err)
