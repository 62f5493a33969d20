"""Single debugger attachment to one page target, with event fan-out and a tab stack."""

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx
from bubus import EventBus
from cdp_use import CDPClient
from cdp_use.cdp.target import TargetID
from uuid_extensions import uuid7str

from browser_control.browser.collectors import ObservationCollector
from browser_control.browser.events import TabClosedEvent, TabCreatedEvent, TargetAttachedEvent, TargetDetachedEvent
from browser_control.browser.tabs import TabHost
from browser_control.browser.views import (
	NewTabTimeoutError,
	NewTabWaitPendingError,
	NoActiveSessionError,
	TabInfo,
)
from browser_control.config import CONFIG
from browser_control.utils import short_id

logger = logging.getLogger(__name__)

EventSubscriber = Callable[[str, dict[str, Any]], None]

# Enabled on every new attachment so the collector sees console and network traffic
BASELINE_DOMAINS = ('Network', 'Log', 'Runtime', 'Page', 'Audits')

# Session events forwarded to the collector and to subscribers
OBSERVED_SESSION_EVENTS = (
	'Page.frameStartedNavigating',
	'Page.loadEventFired',
	'Page.navigatedWithinDocument',
	'Page.javascriptDialogOpening',
	'Network.requestWillBeSent',
	'Network.responseReceived',
	'Network.loadingFinished',
	'Network.loadingFailed',
	'Runtime.consoleAPICalled',
	'Runtime.exceptionThrown',
	'Log.entryAdded',
	'Audits.issueAdded',
	'Tracing.dataCollected',
	'Tracing.tracingComplete',
)


async def resolve_ws_url(cdp_url: str, headers: dict[str, str] | None = None) -> str:
	"""Turn a DevTools HTTP root (http://host:9222) into its browser websocket URL."""
	if cdp_url.startswith('ws'):
		return cdp_url

	parsed_url = urlparse(cdp_url)
	path = parsed_url.path.rstrip('/')
	if not path.endswith('/json/version'):
		path = path + '/json/version'
	url = urlunparse((parsed_url.scheme, parsed_url.netloc, path, parsed_url.params, parsed_url.query, parsed_url.fragment))

	async with httpx.AsyncClient() as client:
		version_info = await client.get(url, headers=headers or {})
		version_info.raise_for_status()
		return version_info.json()['webSocketDebuggerUrl']


class ConnectionManager:
	"""Owns the one active debugger attachment.

	All protocol traffic goes over a single browser-level CDPClient. Attaching to a page
	opens a flattened session on it; `call()` sends on that session only. At most one
	page is attached at a time: attaching elsewhere detaches first.
	"""

	def __init__(
		self,
		cdp_client: CDPClient,
		event_bus: EventBus | None = None,
		collector: ObservationCollector | None = None,
	):
		self.cdp_client = cdp_client
		self.event_bus = event_bus or EventBus(name=f'BrowserControl_{uuid7str()[-4:]}')
		self.collector = collector or ObservationCollector()
		self.tabs = TabHost(self)

		self.current_target_id: TargetID | None = None
		# intended target, recorded even when the attach fails
		self.target_id: TargetID | None = None
		self.session_id: str | None = None
		self.attached = False

		self._subscribers: list[EventSubscriber] = []
		self._on_attach_callbacks: list[Callable[[], None]] = []
		self._on_detach_callbacks: list[Callable[[], None]] = []

		self._tab_stack: list[TargetID] = []
		self._new_tab_waiter: asyncio.Future[TabInfo] | None = None

		self._trace_events: list[dict[str, Any]] = []
		self._trace_complete: asyncio.Future[list[dict[str, Any]]] | None = None

		self._listeners_registered = False

	@classmethod
	async def connect(cls, cdp_url: str | None = None, **kwargs: Any) -> 'ConnectionManager':
		"""Connect to a running browser and return a started manager."""
		ws_url = await resolve_ws_url(cdp_url or CONFIG.BROWSER_CONTROL_CDP_URL)
		logger.debug(f'🌎 Connecting to browser via CDP: {ws_url}')
		cdp_client = CDPClient(ws_url)
		await cdp_client.start()
		manager = cls(cdp_client, **kwargs)
		await manager.start()
		return manager

	async def start(self) -> None:
		"""Register protocol listeners and turn on target discovery."""
		if not self._listeners_registered:
			for method in OBSERVED_SESSION_EVENTS:
				self._register(method, self._make_session_handler(method))
			self._register('Target.targetCreated', self._on_target_created)
			self._register('Target.targetDestroyed', self._on_target_destroyed)
			self._register('Target.detachedFromTarget', self._on_detached_from_target)
			self._listeners_registered = True

		await self.cdp_client.send.Target.setDiscoverTargets(params={'discover': True})
		logger.debug('✅ Connection listeners registered, target discovery enabled')

	async def close(self) -> None:
		"""Detach, stop the protocol client and shut the event bus down."""
		await self.detach()
		await self.cdp_client.stop()
		await self.event_bus.stop(clear=True)

	def _register(self, method: str, handler: Callable[..., None]) -> None:
		domain, event = method.split('.', 1)
		getattr(getattr(self.cdp_client.register, domain), event)(handler)

	# --- Attachment ---

	async def attach(self, target_id: TargetID) -> None:
		"""Attach to `target_id`. A failed attach leaves `attached=False` without raising."""
		self.target_id = target_id

		if self.attached and self.current_target_id == target_id:
			return

		if self.attached:
			await self.detach()

		try:
			result = await self.cdp_client.send.Target.attachToTarget(params={'targetId': target_id, 'flatten': True})
		except Exception as e:
			logger.warning(f'⚠️ Debugger attach to {short_id(target_id)} failed (likely restricted URL): {type(e).__name__}: {e}')
			return

		self.session_id = result['sessionId']
		self.current_target_id = target_id
		self.attached = True

		# new session, nothing collected so far belongs to it
		self.collector.clear()
		self._trace_events = []

		for domain in BASELINE_DOMAINS:
			try:
				await self.call(f'{domain}.enable')
			except Exception as e:
				logger.warning(f'⚠️ Failed to enable {domain} domain: {type(e).__name__}: {e}')

		for callback in list(self._on_attach_callbacks):
			try:
				callback()
			except Exception as e:
				logger.warning(f'⚠️ Attach callback failed: {type(e).__name__}: {e}')

		logger.info(f'🔗 Attached to target {short_id(target_id)}')
		self.event_bus.dispatch(TargetAttachedEvent(target_id=target_id, session_id=self.session_id))

	async def detach(self) -> None:
		if not self.attached or not self.session_id:
			return

		session_id = self.session_id
		try:
			await self.cdp_client.send.Target.detachFromTarget(params={'sessionId': session_id})
		except Exception as e:
			logger.debug(f'Target.detachFromTarget failed for session {short_id(session_id)}: {e}')

		self._mark_detached('detach')

	def _mark_detached(self, reason: str) -> None:
		target_id = self.current_target_id
		self.attached = False
		self.current_target_id = None
		self.session_id = None
		self._trace_events = []

		for callback in list(self._on_detach_callbacks):
			try:
				callback()
			except Exception as e:
				logger.warning(f'⚠️ Detach callback failed: {type(e).__name__}: {e}')

		logger.info(f'🔌 Detached from target {short_id(target_id)} ({reason})')
		if target_id:
			self.event_bus.dispatch(TargetDetachedEvent(target_id=target_id, reason=reason))

	def on_attach(self, callback: Callable[[], None]) -> None:
		self._on_attach_callbacks.append(callback)

	def on_detach(self, callback: Callable[[], None]) -> None:
		self._on_detach_callbacks.append(callback)

	async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		"""Send one command on the attached session."""
		if not self.attached or not self.session_id:
			raise NoActiveSessionError()
		return await self.cdp_client.send_raw(method, params=params or {}, session_id=self.session_id)

	# --- Event fan-out ---

	def subscribe(self, callback: EventSubscriber) -> EventSubscriber:
		if callback not in self._subscribers:
			self._subscribers.append(callback)
		return callback

	def unsubscribe(self, callback: EventSubscriber) -> None:
		if callback in self._subscribers:
			self._subscribers.remove(callback)

	@contextmanager
	def subscription(self, callback: EventSubscriber) -> Iterator[EventSubscriber]:
		"""Keep `callback` subscribed for the span of one `with` block."""
		self.subscribe(callback)
		try:
			yield callback
		finally:
			self.unsubscribe(callback)

	@property
	def subscriber_count(self) -> int:
		return len(self._subscribers)

	def _make_session_handler(self, method: str) -> Callable[..., None]:
		def handler(event: dict[str, Any], session_id: str | None = None) -> None:
			self._handle_event(method, event, session_id)

		return handler

	def _handle_event(self, method: str, params: dict[str, Any], session_id: str | None) -> None:
		if not self.attached or session_id != self.session_id:
			return

		if method == 'Tracing.dataCollected':
			self._trace_events.extend(params.get('value', []))
		elif method == 'Tracing.tracingComplete':
			if self._trace_complete is not None and not self._trace_complete.done():
				self._trace_complete.set_result(list(self._trace_events))

		self.collector.handle_event(method, params)

		for callback in list(self._subscribers):
			try:
				callback(method, params)
			except Exception as e:
				logger.warning(f'⚠️ Event subscriber failed on {method}: {type(e).__name__}: {e}')

	def _on_target_created(self, event: dict[str, Any], session_id: str | None = None) -> None:
		info = event.get('targetInfo', {})
		if info.get('type') != 'page':
			return

		tab = TabInfo.from_target_info(info)
		logger.debug(f'🆕 Page target created: {short_id(tab.target_id)} {tab.url}')
		self.event_bus.dispatch(TabCreatedEvent(target_id=tab.target_id, url=tab.url, opener_id=tab.opener_id))

		waiter = self._new_tab_waiter
		if waiter is not None and not waiter.done():
			waiter.set_result(tab)
			self._new_tab_waiter = None

	def _on_target_destroyed(self, event: dict[str, Any], session_id: str | None = None) -> None:
		target_id = event.get('targetId')
		if not target_id:
			return

		if target_id in self._tab_stack:
			self._tab_stack = [t for t in self._tab_stack if t != target_id]
			logger.debug(f'🗑️ Tab {short_id(target_id)} removed from stack')

		if self.attached and self.current_target_id == target_id:
			logger.info(f'🗑️ Attached tab {short_id(target_id)} closed, detaching')
			self._mark_detached('target_destroyed')

		self.event_bus.dispatch(TabClosedEvent(target_id=target_id))

	def _on_detached_from_target(self, event: dict[str, Any], session_id: str | None = None) -> None:
		if self.attached and event.get('sessionId') == self.session_id:
			self._mark_detached('detached_by_browser')

	# --- Tab stack ---

	@property
	def tab_stack(self) -> list[TargetID]:
		return list(self._tab_stack)

	async def switch_to_tab(self, target_id: TargetID, push_current: bool = True) -> None:
		"""Attach to `target_id` and bring it to the front, remembering where we came from."""
		previous = self.current_target_id
		if push_current and previous and previous != target_id:
			self._tab_stack.append(previous)
			logger.debug(f'📚 Pushed tab {short_id(previous)} to stack (depth {len(self._tab_stack)})')

		await self.attach(target_id)

		try:
			await self.tabs.activate_tab(target_id)
		except Exception as e:
			logger.warning(f'⚠️ Failed to activate tab {short_id(target_id)}: {e}')

		logger.info(f'🔀 Switched to tab {short_id(target_id)}')

	async def return_to_previous_tab(self) -> bool:
		if not self._tab_stack:
			logger.warning('⚠️ No previous tab in stack')
			return False

		previous = self._tab_stack.pop()
		logger.debug(f'📚 Returning to tab {short_id(previous)} (remaining {len(self._tab_stack)})')
		await self.switch_to_tab(previous, push_current=False)
		return True

	def clear_tab_stack(self) -> None:
		self._tab_stack = []
		logger.debug('📚 Tab stack cleared')

	# --- New tab wait ---

	def expect_new_tab(self) -> asyncio.Future[TabInfo]:
		"""Arm the new-tab wait before the action that opens the tab.

		Raises NewTabWaitPendingError if another wait is still outstanding.
		"""
		if self._new_tab_waiter is not None and not self._new_tab_waiter.done():
			raise NewTabWaitPendingError('A new-tab wait is already pending')
		self._new_tab_waiter = asyncio.get_running_loop().create_future()
		return self._new_tab_waiter

	def release_new_tab_wait(self, waiter: asyncio.Future[TabInfo]) -> None:
		if not waiter.done():
			waiter.cancel()
		if self._new_tab_waiter is waiter:
			self._new_tab_waiter = None

	@property
	def is_waiting_for_new_tab(self) -> bool:
		return self._new_tab_waiter is not None and not self._new_tab_waiter.done()

	async def wait_for_new_tab(self, timeout: float = 3.0, waiter: asyncio.Future[TabInfo] | None = None) -> TabInfo:
		"""Resolve with the first page target created within `timeout` seconds."""
		if waiter is None:
			waiter = self.expect_new_tab()
		try:
			return await asyncio.wait_for(waiter, timeout)
		except asyncio.TimeoutError:
			raise NewTabTimeoutError(f'No new tab detected within {timeout}s') from None
		finally:
			self.release_new_tab_wait(waiter)

	# --- Tracing ---

	async def start_tracing(self, categories: list[str]) -> None:
		self._trace_events = []
		await self.call('Tracing.start', {'categories': ','.join(categories), 'transferMode': 'ReportEvents'})

	async def stop_tracing(self, timeout: float = 30.0) -> list[dict[str, Any]]:
		self._trace_complete = asyncio.get_running_loop().create_future()
		try:
			await self.call('Tracing.end')
			return await asyncio.wait_for(self._trace_complete, timeout)
		finally:
			self._trace_complete = None
