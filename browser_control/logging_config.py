import logging
import sys

from browser_control.config import CONFIG

_THIRD_PARTY_LOGGERS = ('cdp_use', 'bubus', 'httpx', 'httpcore', 'websockets', 'asyncio')


def setup_logging(log_level: str | None = None, force_setup: bool = False) -> logging.Logger:
	"""Install a stream handler on the `browser_control` logger.

	Args:
		log_level: one of debug/info/warning/error, defaults to BROWSER_CONTROL_LOGGING_LEVEL
		force_setup: replace handlers installed by an earlier call

	Returns:
		The configured package logger
	"""
	level_name = (log_level or CONFIG.BROWSER_CONTROL_LOGGING_LEVEL).upper()
	level = getattr(logging, level_name, logging.INFO)

	logger = logging.getLogger('browser_control')
	if logger.handlers and not force_setup:
		logger.setLevel(level)
		return logger

	for handler in list(logger.handlers):
		logger.removeHandler(handler)

	handler = logging.StreamHandler(sys.stdout)
	handler.setFormatter(logging.Formatter('%(levelname)-8s [%(name)s] %(message)s'))
	logger.addHandler(handler)
	logger.setLevel(level)
	logger.propagate = False

	# Silence noisy libraries unless we are debugging
	for name in _THIRD_PARTY_LOGGERS:
		third_party = logging.getLogger(name)
		third_party.setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
		third_party.propagate = True

	logger.debug(f'📝 Logging initialized at level {level_name}')
	return logger
