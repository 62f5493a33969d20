"""
Transaction orchestrator: the single entry point for tool calls.

Each call runs as checkpoint -> watchdog-guarded dispatch -> commit or rollback. The
orchestrator also owns control mode, blocking-element detection and the
user-intervention protocol.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from browser_control.actions.service import ActionExecutor
from browser_control.browser.connection import ConnectionManager
from browser_control.browser.connection_health import ConnectionHealthMonitor
from browser_control.browser.events import ControlStateChangedEvent, TargetDetachedEvent
from browser_control.browser.views import NonRetryableError, NoActiveSessionError, is_restricted_url
from browser_control.config import CONFIG
from browser_control.control.blocking import detect_blocking_elements
from browser_control.control.overlay import CdpOverlay, ControlOverlay
from browser_control.control.state import AutomationStateStore
from browser_control.control.storage import JsonFileStateStorage
from browser_control.control.views import ControlState, ErrorClassification, InterventionResult
from browser_control.control.watchdog import ExecutionWatchdog
from browser_control.controller.service import Controller
from browser_control.controller.views import ToolCall, ToolResult
from browser_control.dom.views import NO_ROOT_SENTINEL
from browser_control.utils import short_id

logger = logging.getLogger(__name__)

ACTION_TIMEOUTS: dict[str, float] = {
	'navigate_page': 30.0,
	'new_page': 20.0,
	'take_snapshot': 10.0,
	'evaluate_script': 20.0,
	'wait_for': 60.0,
	'performance_stop_trace': 30.0,
	# held open until the user presses Continue
	'request_user_help': 3600.0,
}

ACTION_RETRIES: dict[str, int] = {
	'click': 3,
	'fill': 3,
	'hover': 2,
	'take_snapshot': 1,
	'navigate_page': 2,
	'request_user_help': 0,
}

# Rolled back to their `before_<name>` checkpoint when they fail for good
NAVIGATION_ACTIONS = frozenset({'navigate_page', 'new_page', 'close_page', 'select_page', 'switch_to_tab'})

USER_HELP_KEYWORDS = (
	'timeout',
	'network',
	'failed to fetch',
	'not found',
	'not interactable',
	'not visible',
	'navigation',
	'load',
	'intercepted',
	'obscured',
)

NO_TAB_MESSAGE = 'Error: No active tab found or restricted URL.'
TAB_CLOSED_MESSAGE = 'Browser tab was closed or refreshed. Please try again.'
TAB_CLOSED_DURING_RETRY_MESSAGE = 'Browser tab was closed during retry. Please try again.'
USER_PAUSE_MESSAGE = 'The user paused automation and took over the browser. Complete the steps manually, add a note and press Continue.'


def _is_session_lost(error: BaseException) -> bool:
	return isinstance(error, NoActiveSessionError) or 'no active debugger session' in str(error).lower()


def should_request_user_help(error: BaseException) -> bool:
	"""Whether a failed call is worth handing to the user and then retrying once."""
	if isinstance(error, NonRetryableError) or getattr(error, 'code', None) == 'NON_RETRYABLE':
		return False

	message = str(error).lower()
	if 'no active debugger session' in message:
		return False
	return any(keyword in message for keyword in USER_HELP_KEYWORDS)


class TransactionOrchestrator:
	"""Runs tool calls against the attached page and never raises for a tool failure."""

	def __init__(
		self,
		connection: ConnectionManager,
		executor: ActionExecutor | None = None,
		controller: Controller | None = None,
		state_store: AutomationStateStore | None = None,
		watchdog: ExecutionWatchdog | None = None,
		overlay: ControlOverlay | None = None,
		health_monitor: ConnectionHealthMonitor | None = None,
		detect_blocking: bool = True,
	):
		self.connection = connection
		self.event_bus = connection.event_bus
		self.overlay: ControlOverlay = overlay or CdpOverlay(connection)
		self.executor = executor or ActionExecutor(connection, overlay=self.overlay)
		self.controller: Controller = controller or Controller()
		self.state_store = state_store or AutomationStateStore()
		self.watchdog = watchdog or ExecutionWatchdog(state_store=self.state_store, event_bus=self.event_bus)
		if self.watchdog.progress_callback is None:
			self.watchdog.set_progress_callback(self._handle_watchdog_progress)
		self.health_monitor = health_monitor or ConnectionHealthMonitor(connection)
		self.detect_blocking = detect_blocking

		self.control_state = ControlState.INACTIVE
		self._continue_waiter: asyncio.Future[InterventionResult] | None = None
		self._user_pause_task: asyncio.Task[InterventionResult] | None = None
		self._failures_since_health_check = 0
		self._background_tasks: set[asyncio.Task[Any]] = set()

		self.event_bus.on(TargetDetachedEvent, self.on_TargetDetachedEvent)

	@classmethod
	async def connect(cls, cdp_url: str | None = None, persist_state: bool = True, **kwargs: Any) -> 'TransactionOrchestrator':
		"""Connect to a running browser and load the persisted automation state."""
		connection = await ConnectionManager.connect(cdp_url)
		if 'state_store' not in kwargs:
			storage = JsonFileStateStorage(CONFIG.BROWSER_CONTROL_STATE_DIR) if persist_state else None
			kwargs['state_store'] = AutomationStateStore(storage=storage)
			await kwargs['state_store'].load()
		return cls(connection, **kwargs)

	@property
	def is_waiting_for_user(self) -> bool:
		return self._continue_waiter is not None and not self._continue_waiter.done()

	# --- Entry point ---

	async def execute(self, tool_call: ToolCall | dict[str, Any]) -> ToolResult:
		"""Run one tool call and return its result, or an `Error...` string."""
		if not isinstance(tool_call, ToolCall):
			tool_call = ToolCall.model_validate(tool_call)
		action = self.controller.registry.get_action(tool_call.name)
		if action is None:
			logger.warning(f'❓ Unknown tool requested: {tool_call.name}')
			return f"Error: Unknown tool '{tool_call.name}'"
		# aliases share the canonical tool's timeout, retries and checkpoint label
		name, args = action.name, tool_call.args

		try:
			return await self._execute_once(name, args)
		except Exception as e:
			self._failures_since_health_check += 1

			if _is_session_lost(e):
				logger.info(f'🔌 Debugger session closed while executing {name}')
				return TAB_CLOSED_MESSAGE

			logger.error(f'❌ Tool {name} failed: {type(e).__name__}: {e}')
			if not should_request_user_help(e):
				return f'Error executing {name}: {e}'

			logger.info(f'🙋 Asking the user for help after {name} failed')
			intervention = await self.wait_for_user_intervention(
				f'Action {name} failed: {e}\nPlease resolve the problem in the browser, then press Continue. The action will be retried.'
			)
			if intervention.status == 'stopped':
				return f'Error executing {name}: {e}'

			try:
				logger.info(f'🔁 Retrying {name} after user intervention')
				return await self._execute_once(name, args)
			except Exception as retry_error:
				if _is_session_lost(retry_error):
					return TAB_CLOSED_DURING_RETRY_MESSAGE
				logger.error(f'❌ Tool {name} failed again after user intervention: {retry_error}')
				return f'Error executing {name} after retry: {retry_error}'

	async def _execute_once(self, name: str, args: dict[str, Any]) -> ToolResult:
		if not await self.ensure_connection():
			return NO_TAB_MESSAGE

		if self._user_pause_task is not None:
			await self._user_pause_task
			self._user_pause_task = None

		if self.control_state == ControlState.INACTIVE:
			await self.enable_control_mode()

		logger.debug(f'🛠️ Executing tool: {name} {args}')
		await self._update_status('Analyzing page state...')

		if self.detect_blocking and name != 'request_user_help':
			blocking = await detect_blocking_elements(self.connection)
			if blocking is not None:
				logger.warning(f'🚧 {blocking.type} blocks automation, waiting for the user')
				await self.wait_for_user_intervention(blocking.message or f'{blocking.type} detected. Please handle it, then press Continue.')

		return await self._execute_with_transaction(name, args)

	async def ensure_connection(self) -> bool:
		"""Make sure a page is attached. Returns False when there is no usable tab."""
		connection = self.connection

		if connection.attached and self._failures_since_health_check:
			self._failures_since_health_check = 0
			if await self.health_monitor.is_connection_broken():
				await self.health_monitor.attempt_connection_recovery()

		if connection.attached:
			return True

		tabs = await connection.tabs.list_tabs()
		tab = next((t for t in tabs if t.target_id == connection.target_id), None) or (tabs[0] if tabs else None)
		if tab is None:
			logger.warning('⚠️ No page target available')
			return False

		if is_restricted_url(tab.url):
			connection.target_id = tab.target_id
			logger.warning(f'⚠️ Tab {short_id(tab.target_id)} shows a restricted page ({tab.url}), not attaching')
			return False

		await connection.attach(tab.target_id)
		return connection.attached

	# --- Transaction ---

	async def _execute_with_transaction(self, name: str, args: dict[str, Any]) -> ToolResult:
		await self._update_status('Creating checkpoint...')

		snapshot = await self._capture_snapshot()
		if snapshot:
			await self.state_store.update_snapshot(snapshot, self.state_store.hash_snapshot(snapshot))

		await self.state_store.update_last_action({'name': name, 'args': args})
		checkpoint_label = f'before_{name}'
		await self.state_store.save_checkpoint(checkpoint_label, {'action': name, 'args': args, 'snapshot': snapshot})

		async def on_error(error: BaseException, classification: ErrorClassification) -> None:
			logger.warning(f'⚠️ Action {name} failed ({classification.type}): {error}')
			self.state_store.append_event(
				{'type': 'action_failed', 'action': name, 'error': str(error), 'classification': classification.to_dict()}
			)

		try:
			result = await self.watchdog.run_with_watchdog(
				name,
				lambda: self.controller.act(name, args, executor=self.executor, context=self),
				timeout=self.get_action_timeout(name),
				retries=self.get_action_retries(name),
				on_error=on_error,
			)
		except Exception as error:
			logger.error(f'❌ Action {name} failed after all retries, rolling back')
			await self.state_store.mark_needs_recovery(f'Action {name} failed: {error}')

			if name in NAVIGATION_ACTIONS:
				try:
					await self.state_store.restore_checkpoint(checkpoint_label)
				except Exception as restore_error:
					logger.error(f'❌ Failed to restore checkpoint {checkpoint_label}: {restore_error}')
			raise

		self.state_store.append_event({'type': 'action_committed', 'action': name})
		logger.debug(f'✅ Action {name} committed')
		return result

	@staticmethod
	def get_action_timeout(name: str) -> float:
		return ACTION_TIMEOUTS.get(name, CONFIG.BROWSER_CONTROL_DEFAULT_TIMEOUT)

	@staticmethod
	def get_action_retries(name: str) -> int:
		return ACTION_RETRIES.get(name, CONFIG.BROWSER_CONTROL_MAX_RETRIES)

	async def _capture_snapshot(self, force_refresh: bool = False) -> str | None:
		if not self.connection.attached:
			return None
		try:
			snapshot = await self.executor.take_snapshot(force_refresh=force_refresh)
		except Exception as e:
			logger.warning(f'⚠️ Snapshot for checkpoint failed: {type(e).__name__}: {e}')
			return None
		return None if snapshot == NO_ROOT_SENTINEL else snapshot

	# --- Control mode ---

	async def enable_control_mode(self) -> None:
		if self.control_state == ControlState.INACTIVE:
			self._set_control_state(ControlState.ACTIVE, 'enabled')
			logger.info('🎮 Control mode enabled')
		await self._call_overlay(self.overlay.show())

	async def disable_control_mode(self) -> None:
		if self.control_state == ControlState.INACTIVE:
			return
		await self._force_stop_control('disabled')
		logger.info('🎮 Control mode disabled')

	async def stop(self) -> None:
		"""Force-stop control mode. A pending intervention resolves with status 'stopped'."""
		await self._force_stop_control('stopped')

	async def _force_stop_control(self, reason: str) -> None:
		waiter = self._continue_waiter
		self._continue_waiter = None
		if waiter is not None and not waiter.done():
			waiter.set_result(InterventionResult(status='stopped'))

		self._user_pause_task = None
		await self.state_store.clear_user_intervention()
		self._set_control_state(ControlState.INACTIVE, reason)
		await self._call_overlay(self.overlay.hide())

	async def on_TargetDetachedEvent(self, event: TargetDetachedEvent) -> None:
		# our own detach() calls are routine; anything else means the page went away under us
		if event.reason == 'detach' or self.control_state == ControlState.INACTIVE:
			return
		logger.info(f'🔌 Debugger detached unexpectedly ({event.reason}), disabling control mode')
		await self.disable_control_mode()

	def _set_control_state(self, new_state: ControlState, reason: str = '') -> None:
		previous = self.control_state
		if previous == new_state:
			return
		self.control_state = new_state
		logger.debug(f'🎮 Control state {previous.value} -> {new_state.value} ({reason})')
		self.event_bus.dispatch(ControlStateChangedEvent(previous=previous.value, current=new_state.value, reason=reason))

	# --- User intervention ---

	def pause(self) -> 'asyncio.Task[InterventionResult] | None':
		"""The user took over: the next tool call waits until they press Continue."""
		if self.is_waiting_for_user:
			return None
		logger.info('⏸️ User requested pause')
		self._user_pause_task = asyncio.create_task(self.wait_for_user_intervention(USER_PAUSE_MESSAGE))
		return self._user_pause_task

	async def wait_for_user_intervention(self, message: str) -> InterventionResult:
		"""Hand the page to the user and wait for `continue_automation()` or `stop()`."""
		if self.is_waiting_for_user:
			return InterventionResult(status='already_waiting')

		logger.info(f'🙋 Waiting for user intervention: {message}')
		# claimed before the first await so a concurrent request sees it
		waiter: asyncio.Future[InterventionResult] = asyncio.get_running_loop().create_future()
		self._continue_waiter = waiter

		snapshot = await self._capture_snapshot()
		if snapshot:
			await self.state_store.update_snapshot(snapshot, self.state_store.hash_snapshot(snapshot))

		if not waiter.done():
			await self.state_store.mark_user_intervention('user_requested')
			await self.state_store.save_checkpoint('user_pause', {'message': message, 'snapshot': snapshot})

		# continue or stop landed while the hand-off was being set up
		if waiter.done():
			logger.debug('🙋 Intervention resolved before the hand-off completed')
			await self.state_store.clear_user_intervention()
			return waiter.result()

		self._set_control_state(ControlState.INTERVENING, 'user_intervention')
		await self._call_overlay(self.overlay.pause(message))

		return await waiter

	async def continue_automation(self, note: str = '') -> InterventionResult | None:
		"""Resume after a user intervention. Returns None when nothing was waiting."""
		waiter = self._continue_waiter
		if waiter is None or waiter.done():
			logger.debug('▶️ Continue requested but no intervention is pending')
			return None

		logger.info('▶️ User requested continue')
		trimmed_note = (note or '').strip()
		if trimmed_note:
			self.state_store.append_event({'type': 'user_intervention_note', 'note': trimmed_note})

		new_snapshot = await self._capture_snapshot(force_refresh=True)
		old_hash = self.state_store.state.snapshot_hash
		if new_snapshot:
			new_hash = self.state_store.hash_snapshot(new_snapshot)
			if old_hash and self.state_store.has_page_changed(new_hash):
				logger.info('🔄 Page changed during user intervention')
				await self.state_store.update_snapshot(new_snapshot, new_hash)
				self.state_store.append_event({'type': 'page_changed_during_intervention', 'oldHash': old_hash, 'newHash': new_hash})
			elif not old_hash:
				await self.state_store.update_snapshot(new_snapshot, new_hash)

		await self.state_store.clear_user_intervention()
		self._set_control_state(ControlState.ACTIVE, 'user_continued')
		await self._call_overlay(self.overlay.resume())

		events = self.state_store.get_recent_events(5)
		result = InterventionResult(
			status='continued',
			page_changed=any(event.get('type') == 'page_changed_during_intervention' for event in events),
			note=trimmed_note,
			events=events,
		)
		self._continue_waiter = None
		if not waiter.done():
			waiter.set_result(result)
		return result

	# --- Progress / overlay ---

	def _handle_watchdog_progress(self, stage: str, payload: dict[str, Any]) -> None:
		action_name = payload.get('actionName')
		if stage == 'start':
			self._spawn(self._update_status(f'Executing: {action_name}...'))
		elif stage == 'heartbeat':
			self._spawn(self._update_status(f'{action_name} - {payload.get("message") or "running"}...'))
		elif stage == 'retry':
			self._spawn(self._update_status(f'Retrying: {action_name} (attempt {payload.get("attempt")})...'))
		elif stage == 'error':
			classification = (payload.get('classification') or {}).get('type', 'unknown')
			logger.warning(f'⚠️ Action failed: {action_name} ({classification})')
		elif stage == 'success':
			logger.debug(f'✅ Action succeeded: {action_name}')

	async def _update_status(self, message: str) -> None:
		if self.control_state == ControlState.INACTIVE:
			return
		await self._call_overlay(self.overlay.update_status(message))

	async def _call_overlay(self, call: Coroutine[Any, Any, None]) -> None:
		try:
			await call
		except Exception as e:
			logger.debug(f'Overlay call failed: {type(e).__name__}: {e}')

	def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
		task = asyncio.create_task(coro)
		self._background_tasks.add(task)
		task.add_done_callback(self._background_tasks.discard)
