"""Configuration for browser_control.

Values are read from the environment on every access so tests and long-running
processes can change them without re-importing the package. A `.env` file in the
working directory is loaded once at import time.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
	raw = os.getenv(name)
	if raw is None or raw.strip() == '':
		return default
	try:
		return float(raw)
	except ValueError:
		logger.warning(f'⚠️ Invalid value for {name}={raw!r}, using default {default}')
		return default


def _env_int(name: str, default: int) -> int:
	return int(_env_float(name, float(default)))


class Config:
	"""Lazy environment-backed configuration."""

	@property
	def BROWSER_CONTROL_LOGGING_LEVEL(self) -> str:
		return os.getenv('BROWSER_CONTROL_LOGGING_LEVEL', 'info').lower()

	@property
	def BROWSER_CONTROL_CDP_URL(self) -> str:
		return os.getenv('BROWSER_CONTROL_CDP_URL', 'http://localhost:9222')

	@property
	def BROWSER_CONTROL_STATE_DIR(self) -> Path:
		path = Path(os.getenv('BROWSER_CONTROL_STATE_DIR', '~/.config/browser_control/state')).expanduser()
		return path

	@property
	def BROWSER_CONTROL_STATE_KEY(self) -> str:
		return os.getenv('BROWSER_CONTROL_STATE_KEY', 'browser_automation_state')

	@property
	def BROWSER_CONTROL_DEFAULT_TIMEOUT(self) -> float:
		# seconds
		return _env_float('BROWSER_CONTROL_DEFAULT_TIMEOUT', 15.0)

	@property
	def BROWSER_CONTROL_MAX_RETRIES(self) -> int:
		return _env_int('BROWSER_CONTROL_MAX_RETRIES', 2)

	@property
	def BROWSER_CONTROL_MAX_EVENTS(self) -> int:
		return _env_int('BROWSER_CONTROL_MAX_EVENTS', 100)


CONFIG = Config()
