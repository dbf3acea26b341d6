"""Logging setup for the trampoline client.

The trampoline's stderr is relayed output from the desktop app, so logging is
silent unless DESKTOP_TRAMPOLINE_LOG_LEVEL is set.
"""

import logging
import sys
from pathlib import Path

from desktop_trampoline.errors import ConfigurationError

LOGGER_NAME = 'desktop_trampoline'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(level: str | None = None, log_file: Path | None = None) -> logging.Logger:
	"""Configure the package logger and return it."""
	logger = logging.getLogger(LOGGER_NAME)
	for handler in list(logger.handlers):
		logger.removeHandler(handler)
		handler.close()
	logger.propagate = False

	if not level:
		logger.addHandler(logging.NullHandler())
		logger.setLevel(logging.CRITICAL)
		return logger

	if log_file is not None:
		try:
			handler = logging.FileHandler(log_file, encoding='utf-8')
		except OSError as e:
			raise ConfigurationError(f"Couldn't open log file {log_file}", str(e)) from e
	else:
		handler = logging.StreamHandler(sys.stderr)
	handler.setFormatter(logging.Formatter(LOG_FORMAT))
	logger.addHandler(handler)
	logger.setLevel(level.upper())
	return logger
