"""Round trips between the trampoline client and the reference server."""

import asyncio
import io

import pytest

from desktop_trampoline.errors import ProtocolError
from desktop_trampoline.main import run_trampoline
from desktop_trampoline.protocol import TrampolineRequest, TrampolineResponse
from desktop_trampoline.server import TrampolineServer, echo_handler, read_request
from desktop_trampoline.stdin import StdinReader


async def trampoline(port: int, argv: list[str], environ: dict[str, str] | None = None, stdin: bytes = b''):
	"""Run the client in a worker thread; returns (status, stdout, stderr)."""
	stdout, stderr = io.BytesIO(), io.BytesIO()
	status = await asyncio.to_thread(
		run_trampoline,
		argv,
		{'DESKTOP_PORT': str(port), **(environ or {})},
		StdinReader(io.BytesIO(stdin)),
		stdout,
		stderr,
	)
	return status, stdout.getvalue(), stderr.getvalue()


@pytest.mark.asyncio
async def test_arguments_environment_and_stdin_reach_the_server():
	seen: list[TrampolineRequest] = []

	def handler(request: TrampolineRequest) -> TrampolineResponse:
		seen.append(request)
		return TrampolineResponse(stdout=b'username=alice\npassword=hunter2\n')

	async with TrampolineServer(handler) as server:
		status, stdout, stderr = await trampoline(
			server.port,
			['trampoline', 'get'],
			{'DESKTOP_USERNAME': 'alice', 'DESKTOP_TRAMPOLINE_TOKEN': 't0k3n', 'SSH_AUTH_SOCK': '/tmp/agent'},
			stdin=b'protocol=https\nhost=github.com\n\n',
		)

	assert status == 0
	assert stdout == b'username=alice\npassword=hunter2\n'
	assert stderr == b''
	assert len(seen) == 1
	assert seen[0].arguments == ['get']
	assert seen[0].environment == ['DESKTOP_USERNAME=alice', 'DESKTOP_TRAMPOLINE_TOKEN=t0k3n']
	assert seen[0].environment_dict() == {'DESKTOP_USERNAME': 'alice', 'DESKTOP_TRAMPOLINE_TOKEN': 't0k3n'}
	assert seen[0].stdin == b'protocol=https\nhost=github.com\n\n'


@pytest.mark.asyncio
async def test_many_arguments_round_trip_in_order():
	seen: list[TrampolineRequest] = []
	arguments = [f'arg-{i}' for i in range(50)] + ['', 'Username for \'https://github.com\': ']

	async def handler(request: TrampolineRequest) -> TrampolineResponse:
		seen.append(request)
		return TrampolineResponse()

	async with TrampolineServer(handler) as server:
		status, _, _ = await trampoline(server.port, ['trampoline', *arguments])

	assert status == 0
	assert seen[0].arguments == arguments


@pytest.mark.asyncio
async def test_server_stderr_is_relayed():
	def handler(request: TrampolineRequest) -> TrampolineResponse:
		return TrampolineResponse(stdout=b'', stderr=b'fatal: Authentication failed\n')

	async with TrampolineServer(handler) as server:
		status, stdout, stderr = await trampoline(server.port, ['trampoline', 'get'])

	assert status == 0
	assert stdout == b''
	assert stderr == b'fatal: Authentication failed\n'


@pytest.mark.asyncio
async def test_oversized_server_output_is_rejected_by_the_client():
	def handler(request: TrampolineRequest) -> TrampolineResponse:
		return TrampolineResponse(stdout=b'x' * 10_000)

	async with TrampolineServer(handler) as server:
		status, stdout, stderr = await trampoline(server.port, ['trampoline'])

	assert status == 1
	assert stdout == b''
	assert b'bigger than buffer: 10000 > 4096' in stderr


@pytest.mark.asyncio
async def test_failing_handler_reports_on_stderr():
	def handler(request: TrampolineRequest) -> TrampolineResponse:
		raise ValueError('no such repository')

	async with TrampolineServer(handler) as server:
		status, stdout, stderr = await trampoline(server.port, ['trampoline'])

	assert status == 0
	assert stdout == b''
	assert stderr == b'ValueError: no such repository\n'


@pytest.mark.asyncio
async def test_echo_handler_describes_the_invocation():
	async with TrampolineServer(echo_handler) as server:
		status, stdout, _ = await trampoline(server.port, ['trampoline', 'status'], {'DESKTOP_USERNAME': 'alice'}, b'abc')

	assert status == 0
	assert stdout == b'argument: status\nenvironment: DESKTOP_USERNAME=alice\nstdin: 3 byte(s)\n'


@pytest.mark.asyncio
async def test_read_request_rejects_string_without_nul():
	reader = asyncio.StreamReader()
	reader.feed_data(b'\x01\x001')
	reader.feed_eof()

	with pytest.raises(ProtocolError):
		await read_request(reader)


@pytest.mark.asyncio
async def test_read_request_requires_stdin_terminator():
	reader = asyncio.StreamReader()
	reader.feed_data(b'\x02\x000\x00\x02\x000\x00some stdin')
	reader.feed_eof()

	with pytest.raises(ProtocolError):
		await read_request(reader)
