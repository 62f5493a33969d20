import logging
import time
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec('P')
R = TypeVar('R')

_BASE36_DIGITS = '0123456789abcdefghijklmnopqrstuvwxyz'


def time_execution_async(
	additional_text: str = '',
) -> Callable[[Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]]:
	def decorator(func: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, Coroutine[Any, Any, R]]:
		@wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			start_time = time.time()
			result = await func(*args, **kwargs)
			execution_time = time.time() - start_time
			# Only log if execution takes more than 0.25 seconds to avoid spamming the logs
			if execution_time > 0.25:
				logger.debug(f'⏳ {additional_text.strip("-") or func.__name__}() took {execution_time:.2f}s')
			return result

		return wrapper

	return decorator


def to_base36(value: int) -> str:
	"""Render a signed integer in base 36 (lowercase), `-` prefixed when negative."""
	if value == 0:
		return '0'
	sign = '-' if value < 0 else ''
	value = abs(value)
	digits = []
	while value:
		value, rem = divmod(value, 36)
		digits.append(_BASE36_DIGITS[rem])
	return sign + ''.join(reversed(digits))


def rolling_hash32(text: str) -> int:
	"""`h = h * 31 + c` over the string, wrapped to a signed 32-bit integer."""
	h = 0
	for char in text:
		h = (h * 31 + ord(char)) & 0xFFFFFFFF
	if h >= 0x80000000:
		h -= 0x100000000
	return h


def djb2_hex(text: str) -> str:
	"""DJB2 (`h * 33 + c`, seed 5381) as an unsigned 32-bit hex string."""
	h = 5381
	for char in text:
		h = (h * 33 + ord(char)) & 0xFFFFFFFF
	return format(h, 'x')


def short_id(target_id: str | None) -> str:
	"""Last four characters of a target id, for log lines."""
	return f'...{target_id[-4:]}' if target_id else '???'
