#!/usr/bin/env python3
"""Trampoline entry point.

Every argument after the program name is forwarded to the desktop app, so the
trampoline has no flags of its own. Configuration comes from the environment:

    DESKTOP_PORT                    port the desktop app listens on (required)
    DESKTOP_TRAMPOLINE_LOG_LEVEL    enable logging (debug, info, ...)
    DESKTOP_TRAMPOLINE_LOG_FILE     write logs here instead of stderr

Exit status is 0 after a complete round trip and 1 on any failure.
"""

import logging
import os
import sys
from collections.abc import Mapping, Sequence
from typing import BinaryIO

from desktop_trampoline.config import TrampolineConfig
from desktop_trampoline.environment import EnvironmentFilter, environ_entries
from desktop_trampoline.errors import TrampolineError
from desktop_trampoline.logging_config import setup_logging
from desktop_trampoline.protocol import TrampolineRequest
from desktop_trampoline.session import Connector, TrampolineSession
from desktop_trampoline.stdin import StdinReader

logger = logging.getLogger(__name__)


def build_request(argv: Sequence[str], environ: Mapping[str, str], config: TrampolineConfig) -> TrampolineRequest:
	"""Request for ``argv`` (program name first) with the allow-listed environment."""
	env_filter = EnvironmentFilter(config.allowed_env_vars)
	return TrampolineRequest(
		arguments=list(argv[1:]),
		environment=env_filter.filter(environ_entries(environ)),
	)


def run_trampoline(
	argv: Sequence[str],
	environ: Mapping[str, str],
	reader: StdinReader | None = None,
	stdout: BinaryIO | None = None,
	stderr: BinaryIO | None = None,
	connector: Connector | None = None,
) -> int:
	"""Forward one invocation and return the process exit status."""
	if stdout is None:
		stdout = sys.stdout.buffer
	if stderr is None:
		stderr = sys.stderr.buffer

	try:
		config = TrampolineConfig.from_env(environ)
		setup_logging(config.log_level, config.log_file)
		request = build_request(argv, environ, config)
		if reader is None:
			reader = StdinReader(chunk_size=config.stdin_chunk_size)
		TrampolineSession(config, connector=connector).run(request, reader, stdout=stdout, stderr=stderr)
	except TrampolineError as e:
		logger.debug(f'Trampoline failed: {e}', exc_info=True)
		_print_error(f'ERROR: {e}', stderr)
		return 1

	return 0


def _print_error(message: str, stderr: BinaryIO) -> None:
	stderr.write((message + '\n').encode('utf-8', 'replace'))
	stderr.flush()


def main() -> int:
	"""Main entry point."""
	return run_trampoline(sys.argv, os.environ)


if __name__ == '__main__':
	sys.exit(main())
