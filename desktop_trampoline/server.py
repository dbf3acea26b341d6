"""Reference trampoline server.

Decodes trampoline requests the way the desktop app does and answers them with
a handler's stdout/stderr. The test suite runs it on an ephemeral port; it is
also handy for poking at the trampoline by hand:

    python -m desktop_trampoline.server --port 5775
    DESKTOP_PORT=5775 DESKTOP_USERNAME=alice desktop-trampoline status
"""

import argparse
import asyncio
import inspect
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable

from desktop_trampoline.config import LOOPBACK_HOST
from desktop_trampoline.errors import ProtocolError
from desktop_trampoline.framing import LENGTH_PREFIX, MAX_FRAME_LENGTH, NUL, decode_length
from desktop_trampoline.protocol import TrampolineRequest, TrampolineResponse

logger = logging.getLogger(__name__)

Handler = Callable[[TrampolineRequest], TrampolineResponse | Awaitable[TrampolineResponse]]

STDIN_CHUNK_SIZE = 4096


async def read_string(reader: asyncio.StreamReader, capacity: int = MAX_FRAME_LENGTH) -> bytes:
	"""Read one NUL-terminated string frame and return it without the NUL."""
	length = decode_length(await reader.readexactly(LENGTH_PREFIX.size))
	if length > capacity:
		raise ProtocolError('Received string is bigger than buffer', f'{length} > {capacity}')
	payload = await reader.readexactly(length)
	if not payload.endswith(NUL):
		raise ProtocolError('String is not NUL-terminated', repr(payload[:32]))
	return payload[:-1]


async def read_count(reader: asyncio.StreamReader, what: str) -> int:
	raw = await read_string(reader)
	try:
		return int(raw.decode('ascii'))
	except (UnicodeDecodeError, ValueError) as e:
		raise ProtocolError(f'Invalid {what}', repr(raw)) from e


async def read_stdin(reader: asyncio.StreamReader) -> bytes:
	"""Read raw stdin bytes up to (not including) the NUL terminator."""
	data = bytearray()
	while True:
		chunk = await reader.read(STDIN_CHUNK_SIZE)
		if not chunk:
			raise ProtocolError('Connection closed before stdin terminator')
		end = chunk.find(NUL)
		if end >= 0:
			data += chunk[:end]
			return bytes(data)
		data += chunk


async def read_request(reader: asyncio.StreamReader) -> TrampolineRequest:
	argc = await read_count(reader, 'number of arguments')
	arguments = [os.fsdecode(await read_string(reader)) for _ in range(argc)]
	envc = await read_count(reader, 'number of environment variables')
	environment = [os.fsdecode(await read_string(reader)) for _ in range(envc)]
	stdin = await read_stdin(reader)
	return TrampolineRequest(arguments=arguments, environment=environment, stdin=stdin)


def echo_handler(request: TrampolineRequest) -> TrampolineResponse:
	"""Describe the invocation back to the caller."""
	lines = [f'argument: {argument}' for argument in request.arguments]
	lines.extend(f'environment: {name}={value}' for name, value in request.environment_dict().items())
	lines.append(f'stdin: {len(request.stdin)} byte(s)')
	return TrampolineResponse(stdout=('\n'.join(lines) + '\n').encode())


class TrampolineServer:
	"""Accepts trampoline connections, one request per connection."""

	def __init__(self, handler: Handler, host: str = LOOPBACK_HOST, port: int = 0) -> None:
		self.handler = handler
		self.host = host
		self.port = port
		self._server: asyncio.Server | None = None

	async def __aenter__(self) -> 'TrampolineServer':
		await self.start()
		return self

	async def __aexit__(self, exc_type, exc_value, traceback) -> None:
		await self.close()

	async def start(self) -> int:
		"""Start listening and return the bound port."""
		self._server = await asyncio.start_server(self.handle_connection, self.host, self.port)
		self.port = self._server.sockets[0].getsockname()[1]
		logger.info(f'Listening on TCP {self.host}:{self.port}')
		return self.port

	async def serve_forever(self) -> None:
		assert self._server is not None
		async with self._server:
			await self._server.serve_forever()

	async def close(self) -> None:
		if self._server is not None:
			self._server.close()
			await self._server.wait_closed()
			self._server = None

	async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
		addr = writer.get_extra_info('peername')
		logger.debug(f'Connection from {addr}')

		try:
			try:
				request = await read_request(reader)
			except (ProtocolError, asyncio.IncompleteReadError) as e:
				logger.warning(f'Dropping malformed request from {addr}: {e}')
				return

			logger.info(f'Request: {len(request.arguments)} argument(s), {len(request.environment)} variable(s)')
			response = await self.dispatch(request)
			try:
				data = response.to_wire()
			except ProtocolError as e:
				logger.error(f'Response cannot be framed: {e}')
				data = TrampolineResponse(stderr=f'{e}\n'.encode()).to_wire()
			writer.write(data)
			await writer.drain()
		except ConnectionError as e:
			logger.warning(f'Connection error from {addr}: {e}')
		finally:
			writer.close()
			try:
				await writer.wait_closed()
			except ConnectionError:
				pass

	async def dispatch(self, request: TrampolineRequest) -> TrampolineResponse:
		"""Run the handler; a failing handler reports its error on stderr."""
		try:
			result = self.handler(request)
			if inspect.isawaitable(result):
				result = await result
			return result
		except Exception as e:
			logger.exception(f'Handler failed: {e}')
			return TrampolineResponse(stderr=f'{type(e).__name__}: {e}\n'.encode())


def main() -> None:
	"""Run the reference server with the echo handler."""
	parser = argparse.ArgumentParser(description='Reference desktop-trampoline server')
	parser.add_argument('--port', type=int, default=0, help='Port to listen on (default: pick a free one)')
	parser.add_argument('--log-level', default='info', help='Logging level (default: info)')
	args = parser.parse_args()

	logging.basicConfig(
		level=args.log_level.upper(),
		format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
		handlers=[logging.StreamHandler()],
	)

	async def serve() -> None:
		server = TrampolineServer(echo_handler, port=args.port)
		await server.start()
		print(f'DESKTOP_PORT={server.port}', flush=True)

		loop = asyncio.get_running_loop()
		task = asyncio.current_task()
		for sig in (signal.SIGINT, signal.SIGTERM):
			try:
				loop.add_signal_handler(sig, task.cancel)
			except NotImplementedError:
				# Windows doesn't support add_signal_handler
				pass

		try:
			await server.serve_forever()
		except asyncio.CancelledError:
			pass
		finally:
			await server.close()
			logger.info('Server stopped')

	try:
		asyncio.run(serve())
	except KeyboardInterrupt:
		logger.info('Interrupted')
	except Exception as e:
		logger.exception(f'Server error: {e}')
		sys.exit(1)


if __name__ == '__main__':
	main()
