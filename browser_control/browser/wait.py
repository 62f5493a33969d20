"""Navigation and DOM-quiescence waits around page-affecting actions."""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, TypeVar

from browser_control.browser.views import BrowserError

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')

NAVIGATION_POLL_INTERVAL = 0.1
NETWORK_IDLE_POLL_INTERVAL = 0.1

_STABLE_DOM_SCRIPT = """
(async () => {{
	if (!document || !document.body) return true;
	return await new Promise((resolve) => {{
		let timer = null;
		const observer = new MutationObserver(() => {{
			if (timer) clearTimeout(timer);
			timer = setTimeout(done, {stable_ms});
		}});
		function done() {{
			observer.disconnect();
			resolve(true);
		}}
		observer.observe(document.body, {{ attributes: true, childList: true, subtree: true }});
		timer = setTimeout(done, {stable_ms});
		setTimeout(() => {{
			observer.disconnect();
			resolve(false);
		}}, {max_ms});
	}});
}})()
"""


@dataclass(frozen=True)
class WaitTimeouts:
	"""Wait timeouts in seconds."""

	# max time to wait for the DOM to stop mutating
	stable_dom: float = 3.0
	# how long the DOM must stay quiet to count as stable
	stable_dom_for: float = 0.1
	# window after an action in which a navigation may start
	expect_navigation_in: float = 0.2
	# max time to wait for a started navigation to finish
	navigation: float = 15.0
	# fixed pause after actions run without an attachment
	unattached_grace: float = 1.0

	def with_multipliers(self, cpu: float = 1.0, network: float = 1.0) -> 'WaitTimeouts':
		"""Scale for CPU / network throttling emulation."""
		base = WaitTimeouts()
		return replace(
			self,
			stable_dom=base.stable_dom * cpu,
			stable_dom_for=base.stable_dom_for * cpu,
			expect_navigation_in=base.expect_navigation_in * cpu,
			navigation=base.navigation * network,
		)


class WaitCoordinator:
	def __init__(self, connection: 'ConnectionManager', timeouts: WaitTimeouts | None = None):
		self.connection = connection
		self.timeouts = timeouts or WaitTimeouts()

	def update_multipliers(self, cpu: float = 1.0, network: float = 1.0) -> None:
		self.timeouts = self.timeouts.with_multipliers(cpu, network)

	async def _sleep(self, seconds: float) -> None:
		await asyncio.sleep(seconds)

	async def execute(self, action: Callable[[], Awaitable[T]]) -> T:
		"""Run `action`, then wait for any navigation it triggered and for the DOM to settle."""
		if not self.connection.attached:
			# navigation cannot be observed without a session
			result = await action()
			await self._sleep(self.timeouts.unattached_grace)
			return result

		try:
			await self.connection.call('Page.enable')
		except Exception as e:
			logger.debug(f'Page.enable failed before action: {e}')

		nav_started = False
		nav_finished = False

		def on_event(method: str, params: dict[str, Any]) -> None:
			nonlocal nav_started, nav_finished
			if method == 'Page.frameStartedNavigating':
				nav_started = True
			elif method == 'Page.loadEventFired':
				nav_finished = True
			elif method == 'Page.navigatedWithinDocument':
				# same-document navigation is complete as soon as it is reported
				nav_started = True
				nav_finished = True

		with self.connection.subscription(on_event):
			result = await action()

			await self._sleep(self.timeouts.expect_navigation_in)

			if nav_started and not nav_finished:
				logger.debug('🧭 Navigation started, waiting for load')
				deadline = time.monotonic() + self.timeouts.navigation
				while not nav_finished and time.monotonic() < deadline:
					await self._sleep(NAVIGATION_POLL_INTERVAL)
				if not nav_finished:
					logger.warning(f'⚠️ Navigation did not finish within {self.timeouts.navigation}s')

		await self.wait_for_stable_dom()
		return result

	async def wait_for_stable_dom(self, timeout: float | None = None, stability_duration: float | None = None) -> bool:
		"""Wait until the DOM goes `stability_duration` seconds without mutations.

		Returns False when the max timeout was hit first or the page was gone.
		"""
		if not self.connection.attached:
			return False

		max_ms = int((timeout or self.timeouts.stable_dom) * 1000)
		stable_ms = int((stability_duration or self.timeouts.stable_dom_for) * 1000)
		try:
			result = await self.connection.call(
				'Runtime.evaluate',
				{
					'expression': _STABLE_DOM_SCRIPT.format(stable_ms=stable_ms, max_ms=max_ms),
					'awaitPromise': True,
					'returnByValue': True,
				},
			)
		except Exception as e:
			# runtime context may be gone after a navigation
			logger.debug(f'DOM stability wait aborted: {e}')
			return False
		return (result or {}).get('result', {}).get('value') is True

	async def wait_for_condition(
		self,
		expression: str,
		timeout: float = 5.0,
		poll_interval: float = 0.1,
		object_id: str | None = None,
		on_progress: Callable[[dict[str, Any]], None] | None = None,
	) -> bool:
		"""Poll a boolean JavaScript expression until it is true or `timeout` elapses.

		With `object_id` the expression is evaluated with `this` bound to that element.
		Evaluation errors count as "not yet true".
		"""
		if not self.connection.attached:
			raise BrowserError('Cannot wait for condition: connection not attached')
		if not expression:
			raise ValueError('wait_for_condition requires expression')

		start = time.monotonic()
		attempts = 0
		while time.monotonic() - start < timeout:
			attempts += 1
			try:
				if object_id:
					result = await self.connection.call(
						'Runtime.callFunctionOn',
						{
							'objectId': object_id,
							'functionDeclaration': (
								'function() { try { return Boolean(eval(' + json.dumps(expression) + ')); } catch (e) { return false; } }'
							),
							'returnByValue': True,
							'awaitPromise': True,
						},
					)
				else:
					result = await self.connection.call(
						'Runtime.evaluate',
						{
							'expression': f'(() => {{ try {{ return Boolean({expression}); }} catch (e) {{ return false; }} }})()',
							'returnByValue': True,
						},
					)
				if (result or {}).get('result', {}).get('value') is True:
					logger.debug(f'✅ Condition met after {attempts} attempts')
					return True
			except Exception as e:
				logger.debug(f'Condition evaluation failed (attempt {attempts}): {e}')

			if on_progress is not None:
				on_progress({'attempts': attempts, 'elapsed': time.monotonic() - start, 'timeout': timeout})
			await self._sleep(poll_interval)

		logger.debug(f'⏱️ Condition not met within {timeout}s')
		return False

	async def wait_for_network_idle(
		self,
		inflight_threshold: int = 0,
		timeout: float = 10.0,
		idle_duration: float = 0.5,
		on_progress: Callable[[dict[str, Any]], None] | None = None,
	) -> bool:
		"""Resolve True once in-flight requests stay at or below the threshold for `idle_duration`."""
		if not self.connection.attached:
			raise BrowserError('Cannot wait for network idle: connection not attached')

		try:
			await self.connection.call('Network.enable')
		except Exception as e:
			logger.debug(f'Network.enable failed before idle wait: {e}')

		inflight = 0
		start = time.monotonic()
		idle_since: float | None = start

		def on_event(method: str, params: dict[str, Any]) -> None:
			nonlocal inflight, idle_since
			if method == 'Network.requestWillBeSent':
				inflight += 1
				if inflight > inflight_threshold:
					idle_since = None
			elif method in ('Network.loadingFinished', 'Network.loadingFailed'):
				inflight = max(0, inflight - 1)
				if inflight <= inflight_threshold:
					if idle_since is None:
						idle_since = time.monotonic()
				else:
					idle_since = None

		with self.connection.subscription(on_event):
			while True:
				now = time.monotonic()
				elapsed = now - start
				if on_progress is not None:
					on_progress({'inflight_requests': inflight, 'elapsed': elapsed, 'timeout': timeout})
				if idle_since is not None and now - idle_since >= idle_duration:
					logger.debug('✅ Network idle achieved')
					return True
				if elapsed >= timeout:
					logger.warning(f'⏱️ Network idle timeout after {timeout}s ({inflight} requests in flight)')
					return False
				await self._sleep(NETWORK_IDLE_POLL_INTERVAL)
