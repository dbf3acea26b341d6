"""Trampoline configuration, read once from the process environment."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from desktop_trampoline.errors import ConfigurationError

PORT_ENV_VAR = 'DESKTOP_PORT'
LOG_LEVEL_ENV_VAR = 'DESKTOP_TRAMPOLINE_LOG_LEVEL'
LOG_FILE_ENV_VAR = 'DESKTOP_TRAMPOLINE_LOG_FILE'

LOOPBACK_HOST = '127.0.0.1'
BUFFER_LENGTH = 4096

# Variables the desktop app might send or expect to receive back.
DEFAULT_ALLOWED_ENV_VARS: tuple[str, ...] = (
	'DESKTOP_TRAMPOLINE_IDENTIFIER',
	'DESKTOP_TRAMPOLINE_TOKEN',
	'DESKTOP_USERNAME',
	'DESKTOP_ENDPOINT',
)


class TrampolineConfig(BaseModel):
	"""Immutable settings for one trampoline invocation."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	port: int = Field(ge=1, le=65535, description='Loopback port the desktop app listens on')
	host: str = LOOPBACK_HOST
	receive_capacity: int = Field(default=BUFFER_LENGTH, ge=1, le=65535)
	stdin_chunk_size: int = Field(default=BUFFER_LENGTH, ge=1)
	allowed_env_vars: tuple[str, ...] = DEFAULT_ALLOWED_ENV_VARS
	log_level: str | None = None
	log_file: Path | None = None

	@field_validator('allowed_env_vars')
	@classmethod
	def _names_have_no_separator(cls, names: tuple[str, ...]) -> tuple[str, ...]:
		for name in names:
			if not name or '=' in name:
				raise ValueError(f'invalid environment variable name: {name!r}')
		return names

	@field_validator('log_level')
	@classmethod
	def _known_log_level(cls, level: str | None) -> str | None:
		if level is None:
			return None
		level = level.strip().upper()
		if not isinstance(logging.getLevelName(level), int):
			raise ValueError(f'unknown log level: {level!r}')
		return level

	@classmethod
	def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> 'TrampolineConfig':
		"""Build the config from ``environ`` (defaults to ``os.environ``).

		Raises ConfigurationError if DESKTOP_PORT is missing or any value is invalid.
		"""
		if environ is None:
			environ = os.environ

		port = environ.get(PORT_ENV_VAR)
		if port is None:
			raise ConfigurationError(f'Missing {PORT_ENV_VAR} environment variable')

		values = {
			'port': port.strip(),
			'log_level': environ.get(LOG_LEVEL_ENV_VAR) or None,
			'log_file': environ.get(LOG_FILE_ENV_VAR) or None,
		}
		values.update(overrides)

		try:
			return cls(**values)
		except ValidationError as e:
			details = '; '.join(f'{".".join(str(x) for x in err["loc"])}: {err["msg"]}' for err in e.errors())
			raise ConfigurationError('Invalid trampoline configuration', details) from e
