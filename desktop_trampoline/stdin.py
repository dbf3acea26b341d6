"""Zero-wait reads from the trampoline's standard input."""

import io
import os
import select
import sys
from typing import BinaryIO

from desktop_trampoline.config import BUFFER_LENGTH


def _windows_ready(fd: int) -> bool:
	"""select() only polls sockets on Windows; peek at pipes instead.

	A console never counts as ready. A pipe is ready once it holds data or its
	writer has gone away. Anything PeekNamedPipe rejects (a regular file) is
	read directly, since such reads return at once.
	"""
	import ctypes
	import msvcrt
	from ctypes import wintypes

	if os.isatty(fd):
		return False

	available = wintypes.DWORD()
	peeked = ctypes.windll.kernel32.PeekNamedPipe(
		wintypes.HANDLE(msvcrt.get_osfhandle(fd)), None, 0, None, ctypes.byref(available), None
	)
	if not peeked:
		return True
	return available.value > 0


class StdinReader:
	"""Polls a stream without ever blocking on it.

	``try_read()`` returns a chunk of bytes, ``b''`` at end of stream, or None
	when nothing can be read right now. Callers treat both ``b''`` and None as
	"stdin is done": the trampoline must not hang when git gives it no input.
	"""

	def __init__(self, stream: BinaryIO | None = None, chunk_size: int = BUFFER_LENGTH) -> None:
		if stream is None and sys.stdin is not None:
			stream = sys.stdin.buffer
		self._stream = stream
		self._chunk_size = chunk_size
		self._fd = self._fileno(stream)

	@staticmethod
	def _fileno(stream: BinaryIO | None) -> int | None:
		if stream is None:
			return None
		try:
			return stream.fileno()
		except (AttributeError, OSError, io.UnsupportedOperation):
			return None

	def _ready(self) -> bool:
		if self._fd is None:
			return True
		if sys.platform == 'win32':
			return _windows_ready(self._fd)
		readable, _, _ = select.select([self._fd], [], [], 0)
		return bool(readable)

	def try_read(self) -> bytes | None:
		"""Read one chunk if data (or EOF) is available immediately.

		OSError from the underlying read is left to the caller.
		"""
		if self._stream is None:
			return b''
		if not self._ready():
			return None
		if self._fd is None:
			return self._stream.read(self._chunk_size)
		return os.read(self._fd, self._chunk_size)
