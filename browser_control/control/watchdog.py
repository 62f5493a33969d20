"""
Execution watchdog: per-action deadline, heartbeat, classified retry with exponential backoff.

Every action the orchestrator runs goes through `ExecutionWatchdog.run_with_watchdog`.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from bubus import EventBus

from browser_control.browser.events import ActionProgressEvent
from browser_control.browser.views import NonRetryableError, WatchdogTimeoutError
from browser_control.config import CONFIG
from browser_control.control.views import ErrorClassification

if TYPE_CHECKING:
	from browser_control.control.state import AutomationStateStore

logger = logging.getLogger(__name__)

T = TypeVar('T')

ProgressCallback = Callable[[str, dict[str, Any]], None]
ErrorCallback = Callable[[BaseException, ErrorClassification], Awaitable[None]]

DEFAULT_HEARTBEAT_INTERVAL = 1.0
DEFAULT_BACKOFF_BASE = 0.5

RETRYABLE_KEYWORDS = (
	'timeout',
	'network',
	'not found',
	'not visible',
	'not interactable',
	'navigation',
	'load',
	'stale',
	'temporarily unavailable',
)


def classify_error(error: BaseException) -> ErrorClassification:
	"""Decide whether an action failure is worth retrying.

	Explicit types win over message inspection: NonRetryableError never retries, a
	watchdog timeout always does. Everything else is matched on the lowercased message.
	"""
	if isinstance(error, NonRetryableError):
		return ErrorClassification('non_retryable', False)

	if isinstance(error, WatchdogTimeoutError) or getattr(error, 'code', None) == 'WATCHDOG_TIMEOUT':
		return ErrorClassification('timeout', True)

	message = (str(error) or type(error).__name__).lower()

	if 'network' in message or 'connection' in message:
		return ErrorClassification('network', True)
	if 'stale' in message or 'detached' in message:
		return ErrorClassification('stale_context', True)
	if 'intercept' in message or 'not interactable' in message:
		return ErrorClassification('element_interaction', True)
	if any(keyword in message for keyword in RETRYABLE_KEYWORDS):
		return ErrorClassification('retryable', True)

	return ErrorClassification('non_retryable', False)


def calculate_backoff(base: float, attempt: int) -> float:
	return base * 2 ** max(0, attempt - 1)


def _consume_late_result(task: 'asyncio.Future[Any]') -> None:
	if task.cancelled():
		return
	error = task.exception()
	if error is not None:
		logger.debug(f'Timed-out action finished late with {type(error).__name__}: {error}')


class ExecutionWatchdog:
	def __init__(
		self,
		default_timeout: float | None = None,
		max_retries: int | None = None,
		heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
		progress_callback: ProgressCallback | None = None,
		state_store: 'AutomationStateStore | None' = None,
		event_bus: EventBus | None = None,
	):
		self.default_timeout = default_timeout if default_timeout is not None else CONFIG.BROWSER_CONTROL_DEFAULT_TIMEOUT
		self.max_retries = max_retries if max_retries is not None else CONFIG.BROWSER_CONTROL_MAX_RETRIES
		self.heartbeat_interval = heartbeat_interval
		self.progress_callback = progress_callback
		self.state_store = state_store
		self.event_bus = event_bus

	def set_progress_callback(self, callback: ProgressCallback | None) -> None:
		self.progress_callback = callback

	async def run_with_watchdog(
		self,
		action_name: str,
		action: Callable[[], Awaitable[T]],
		timeout: float | None = None,
		retries: int | None = None,
		on_error: ErrorCallback | None = None,
		backoff_base: float | None = None,
		heartbeat_interval: float | None = None,
		heartbeat_message: str = 'running',
	) -> T:
		"""Run `action` with up to `retries + 1` attempts, each bounded by `timeout` seconds.

		The raised error carries a `metadata` dict with the classification, attempt number,
		action name and timeout.
		"""
		timeout = timeout or self.default_timeout
		max_attempts = max(1, (retries if retries is not None else self.max_retries) + 1)
		backoff_base = backoff_base if backoff_base is not None else DEFAULT_BACKOFF_BASE
		interval = heartbeat_interval if heartbeat_interval is not None else self.heartbeat_interval

		for attempt in range(1, max_attempts + 1):
			context = {'actionName': action_name, 'attempt': attempt, 'timeout': timeout}
			self._emit_progress('start', context)
			self._record_state('action_start', context)

			try:
				result = await self._execute_with_timeout(action, timeout, action_name, interval, heartbeat_message)
			except Exception as error:
				classification = classify_error(error)
				self._annotate(error, classification, context)
				self._emit_progress('error', {'actionName': action_name, 'attempt': attempt, 'classification': classification.to_dict()})
				self._record_state(
					'action_error',
					{
						'actionName': action_name,
						'attempt': attempt,
						'classification': classification.to_dict(),
						'error': str(error),
					},
				)

				if not classification.retryable or attempt >= max_attempts:
					logger.warning(
						f'❌ {action_name} failed on attempt {attempt}/{max_attempts} ({classification.type}): {type(error).__name__}: {error}'
					)
					raise

				if on_error is not None:
					await on_error(error, classification)

				delay = calculate_backoff(backoff_base, attempt)
				logger.info(f'🔄 {action_name} failed ({classification.type}), retrying in {delay:.1f}s (attempt {attempt}/{max_attempts})')
				self._emit_progress('retry', {'actionName': action_name, 'attempt': attempt, 'delay': delay})
				self._record_state('action_retry', {'actionName': action_name, 'attempt': attempt, 'delay': delay})
				await asyncio.sleep(delay)
				continue

			self._emit_progress('success', {'actionName': action_name, 'attempt': attempt})
			self._record_state('action_success', {'actionName': action_name, 'attempt': attempt})
			return result

		raise RuntimeError(f'Execution watchdog exhausted retries for {action_name}')

	async def _execute_with_timeout(
		self,
		action: Callable[[], Awaitable[T]],
		timeout: float,
		action_name: str,
		heartbeat_interval: float,
		heartbeat_message: str,
	) -> T:
		task = asyncio.ensure_future(action())
		heartbeat = (
			asyncio.create_task(self._heartbeat(action_name, heartbeat_interval, heartbeat_message)) if heartbeat_interval > 0 else None
		)

		try:
			done, _ = await asyncio.wait({task}, timeout=timeout)
		except asyncio.CancelledError:
			task.cancel()
			raise
		finally:
			if heartbeat is not None:
				heartbeat.cancel()

		if task in done:
			return task.result()

		# the deadline only abandons the attempt, the in-flight call may still finish
		task.add_done_callback(_consume_late_result)
		raise WatchdogTimeoutError(
			f'Action "{action_name}" timed out after {timeout}s',
			{'actionName': action_name, 'timeout': timeout},
		)

	async def _heartbeat(self, action_name: str, interval: float, message: str) -> None:
		while True:
			await asyncio.sleep(interval)
			self._emit_progress('heartbeat', {'actionName': action_name, 'message': message})

	def _annotate(self, error: BaseException, classification: ErrorClassification, context: dict[str, Any]) -> None:
		metadata = dict(getattr(error, 'metadata', None) or {})
		metadata.update({'classification': classification.to_dict(), **context})
		try:
			error.metadata = metadata  # type: ignore[attr-defined]
		except AttributeError:
			logger.debug(f'Could not annotate {type(error).__name__} with watchdog metadata')

	def _emit_progress(self, stage: str, payload: dict[str, Any]) -> None:
		if self.progress_callback is not None:
			try:
				self.progress_callback(stage, payload)
			except Exception as e:
				logger.warning(f'⚠️ Watchdog progress callback failed on {stage}: {type(e).__name__}: {e}')

		if self.event_bus is not None:
			self.event_bus.dispatch(ActionProgressEvent(stage=stage, action_name=payload.get('actionName', ''), payload=payload))

	def _record_state(self, event_type: str, payload: dict[str, Any]) -> None:
		if self.state_store is None:
			return
		try:
			self.state_store.append_event({'type': event_type, **payload})
		except Exception as e:
			logger.warning(f'⚠️ Failed to record watchdog event {event_type}: {type(e).__name__}: {e}')
