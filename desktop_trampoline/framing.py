"""Length-prefixed framing used on the trampoline socket.

A frame is a 2-byte unsigned length followed by that many payload bytes. The
length is little-endian, which is what the desktop app reads and writes.

Outgoing and incoming strings are framed differently, and the difference is
part of the wire contract:

- strings sent by the trampoline carry a trailing NUL that *is* counted in the
  frame length;
- output sent back by the server does *not* include a NUL, and the length
  covers only the text itself.
"""

import logging
import os
import socket
import struct

from desktop_trampoline.errors import ProtocolError, TrampolineIOError

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct('<H')
MAX_FRAME_LENGTH = 0xFFFF
NUL = b'\x00'


def to_bytes(value: str | bytes) -> bytes:
	"""Encode an argument or environment entry the way the OS handed it to us."""
	if isinstance(value, bytes):
		return value
	return os.fsencode(value)


def encode_frame(payload: bytes) -> bytes:
	"""Prefix ``payload`` with its length."""
	if len(payload) > MAX_FRAME_LENGTH:
		raise ProtocolError('Frame too large', f'{len(payload)} > {MAX_FRAME_LENGTH} bytes')
	return LENGTH_PREFIX.pack(len(payload)) + payload


def encode_string(value: str | bytes) -> bytes:
	"""Frame a NUL-terminated string; the NUL is included in the length."""
	return encode_frame(to_bytes(value) + NUL)


def decode_length(prefix: bytes) -> int:
	return LENGTH_PREFIX.unpack(prefix)[0]


def recv_up_to(sock: socket.socket, size: int) -> bytes:
	"""Read until ``size`` bytes arrived or the peer closed the connection."""
	buffer = bytearray(size)
	view = memoryview(buffer)
	received = 0
	while received < size:
		count = sock.recv_into(view[received:], size - received)
		if count == 0:
			break
		received += count
	return bytes(buffer[:received])


def read_frame(sock: socket.socket, capacity: int) -> bytes:
	"""Read one server frame into a buffer of at most ``capacity`` bytes.

	A declared length above ``capacity`` raises ProtocolError before any payload
	is read. If the server closes the connection mid-payload, whatever arrived is
	returned.
	"""
	prefix = recv_up_to(sock, LENGTH_PREFIX.size)
	if len(prefix) < LENGTH_PREFIX.size:
		raise TrampolineIOError('Error reading from socket', 'connection closed before frame length')

	length = decode_length(prefix)
	if length > capacity:
		raise ProtocolError('Received string is bigger than buffer', f'{length} > {capacity}')

	payload = recv_up_to(sock, length)
	if len(payload) < length:
		logger.warning(f'Connection closed after {len(payload)} of {length} bytes')
	return payload
