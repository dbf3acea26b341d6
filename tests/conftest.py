"""Shared fixtures for the trampoline tests."""

import logging
import socket

import pytest

from desktop_trampoline.framing import LENGTH_PREFIX


@pytest.fixture(autouse=True)
def reset_package_logger():
	"""run_trampoline() reconfigures the package logger; undo it so caplog keeps working."""
	yield
	logger = logging.getLogger('desktop_trampoline')
	for handler in list(logger.handlers):
		logger.removeHandler(handler)
		handler.close()
	logger.propagate = True
	logger.setLevel(logging.NOTSET)


@pytest.fixture
def socket_pair():
	"""A connected (client, peer) socket pair, closed after the test."""
	client, peer = socket.socketpair()
	yield client, peer
	client.close()
	peer.close()


def server_frame(payload: bytes) -> bytes:
	"""Frame ``payload`` the way the desktop app sends output back."""
	return LENGTH_PREFIX.pack(len(payload)) + payload


def drain(sock: socket.socket) -> bytes:
	"""Read everything the other side wrote until it closed."""
	chunks = []
	while True:
		chunk = sock.recv(65536)
		if not chunk:
			return b''.join(chunks)
		chunks.append(chunk)


def parse_request(data: bytes) -> tuple[list[bytes], list[bytes], bytes]:
	"""Split raw request bytes into (arguments, environment, stdin)."""
	offset = 0

	def read_string() -> bytes:
		nonlocal offset
		(length,) = LENGTH_PREFIX.unpack_from(data, offset)
		offset += LENGTH_PREFIX.size
		payload = data[offset : offset + length]
		offset += length
		assert payload.endswith(b'\x00'), f'string frame without NUL: {payload!r}'
		return payload[:-1]

	arguments = [read_string() for _ in range(int(read_string()))]
	environment = [read_string() for _ in range(int(read_string()))]
	stdin = data[offset:]
	assert stdin.endswith(b'\x00'), 'stdin segment must end with the NUL terminator'
	return arguments, environment, stdin[:-1]
