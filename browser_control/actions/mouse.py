import asyncio
import logging
from typing import Any

from browser_control.actions.base import BaseActionHandler
from browser_control.browser.views import (
	ActionError,
	ElementDisabledError,
	NewTabWaitPendingError,
	NonRetryableError,
)
from browser_control.utils import short_id

logger = logging.getLogger(__name__)

NEW_TAB_TIMEOUT = 5.0
NEW_TAB_SETTLE_DELAY = 0.5
PRECHECK_TIMEOUT = 3.0
DRAG_STEPS = 10
DRAG_STEP_DELAY = 0.05

_IS_VISIBLE_JS = """function() {
	const rect = this.getBoundingClientRect();
	return rect.width > 0 && rect.height > 0;
}"""

_IS_DISABLED_JS = """function() {
	return this.disabled === true || this.getAttribute('aria-disabled') === 'true';
}"""

_IS_PARENT_DISABLED_JS = """function() {
	return !!(this.parentElement && (this.parentElement.disabled || this.parentElement.getAttribute('aria-disabled') === 'true'));
}"""

_LINK_TARGET_JS = """function() {
	return this.target || this.getAttribute('target');
}"""

_VISIBLE_CONDITION = (
	"(function() { const rect = this.getBoundingClientRect(); "
	"return rect.width > 0 && rect.height > 0 && window.getComputedStyle(this).visibility !== 'hidden'; }).call(this)"
)

_ENABLED_CONDITION = "(function() { return !this.disabled && this.getAttribute('aria-disabled') !== 'true'; }).call(this)"

# composed events reach listeners across shadow roots; options are selected through their <select>
_JS_CLICK = """function(dblClick) {
	try { this.focus(); } catch (e) {}

	if (this.tagName === 'OPTION' && this.parentElement && this.parentElement.tagName === 'SELECT') {
		const select = this.parentElement;
		if (select.multiple) {
			this.selected = !this.selected;
		} else {
			const idx = Array.from(select.options).indexOf(this);
			try {
				const nativeSetter = Object.getOwnPropertyDescriptor(window.HTMLSelectElement.prototype, 'selectedIndex').set;
				nativeSetter.call(select, idx);
			} catch (e) {
				select.selectedIndex = idx;
			}
		}
		select.dispatchEvent(new Event('input', { bubbles: true, composed: true }));
		select.dispatchEvent(new Event('change', { bubbles: true, composed: true }));
		select.dispatchEvent(new Event('click', { bubbles: true, composed: true }));
		return { success: true, isOption: true };
	}

	const opts = { bubbles: true, cancelable: true, view: window, composed: true };
	this.dispatchEvent(new MouseEvent('mousedown', opts));
	this.dispatchEvent(new MouseEvent('mouseup', opts));
	try { this.click(); } catch (e) {}

	if (dblClick) {
		this.dispatchEvent(new MouseEvent('dblclick', opts));
	}
	return { success: true, shadowRoot: !!this.shadowRoot };
}"""


class MouseActions(BaseActionHandler):
	async def click(
		self,
		uid: str,
		dbl_click: bool = False,
		max_retries: int = 3,
		retry_delay: float = 0.5,
		wait_for_interactive: bool = True,
	) -> str:
		"""Click the element behind `uid` with real input events.

		Each attempt re-resolves the element. The final attempt falls back to a script
		click. Options are always selected by script since they have no box geometry.
		"""
		last_error: Exception | None = None

		for attempt in range(1, max_retries + 1):
			try:
				return await self._physical_click(uid, dbl_click, wait_for_interactive)
			except ElementDisabledError:
				raise
			except Exception as e:
				last_error = e
				logger.warning(f'⚠️ Physical click attempt {attempt}/{max_retries} on {uid} failed: {type(e).__name__}: {e}')

				if 'not found in snapshot' in str(e):
					logger.debug('📸 Stale snapshot detected, refreshing')
					try:
						await self.snapshot_manager.take_snapshot()
					except Exception as refresh_error:
						logger.warning(f'⚠️ Snapshot refresh failed: {refresh_error}')

				if attempt == max_retries:
					try:
						return await self._js_click_fallback(uid, dbl_click)
					except NonRetryableError:
						raise
					except Exception as fallback_error:
						raise ActionError(
							f'Click failed after {max_retries} attempts. Last error: {last_error}. Fallback error: {fallback_error}'
						) from fallback_error

				await asyncio.sleep(retry_delay * attempt)

		raise ActionError(f'Click on {uid} was not attempted') from last_error

	async def _physical_click(self, uid: str, dbl_click: bool, wait_for_interactive: bool) -> str:
		object_id = await self.get_object_id(uid)
		backend_node_id = self.snapshot_manager.get_backend_node_id(uid)

		node_name = None
		try:
			described = await self.cmd('DOM.describeNode', {'backendNodeId': backend_node_id})
			node_name = (described or {}).get('node', {}).get('nodeName')
		except Exception as e:
			logger.debug(f'DOM.describeNode failed for {uid}: {e}')

		if node_name == 'OPTION':
			logger.debug(f'🔽 {uid} is an <option>, selecting through its <select>')
			if await self._is_disabled(object_id) or await self._is_parent_disabled(object_id):
				raise ElementDisabledError(f'Element {uid} is disabled', details={'uid': uid})
			return await self._js_click_fallback(uid, dbl_click)

		opens_new_tab = False
		try:
			opens_new_tab = await self.call_function_on(object_id, _LINK_TARGET_JS) == '_blank'
		except Exception as e:
			logger.debug(f'Could not read target attribute of {uid}: {e}')
		if opens_new_tab:
			logger.debug(f'🆕 {uid} has target="_blank", will follow the new tab')

		if self.overlay is not None:
			try:
				await self.overlay.highlight_element(backend_node_id, f"Double clicking '{uid}'..." if dbl_click else f"Clicking '{uid}'...")
			except Exception as e:
				logger.debug(f'Overlay highlight failed: {e}')

		if wait_for_interactive:
			await self._pre_click_checks(uid, object_id)

		x, y = await self.get_click_point(uid, object_id)

		new_tab_waiter = None
		if opens_new_tab:
			try:
				new_tab_waiter = self.connection.expect_new_tab()
			except NewTabWaitPendingError as e:
				logger.warning(f'⚠️ {e}, not following the new tab from this click')

		try:
			if self.overlay is not None:
				try:
					await self.overlay.show_click_feedback(x, y, 'dblclick' if dbl_click else 'click')
				except Exception as e:
					logger.debug(f'Click feedback failed: {e}')

			await self.wait.execute(lambda: self._dispatch_click(x, y, dbl_click))

			switched = False
			if new_tab_waiter is not None:
				switched = await self._follow_new_tab(new_tab_waiter)
		finally:
			if new_tab_waiter is not None:
				self.connection.release_new_tab_wait(new_tab_waiter)

		if self.overlay is not None:
			try:
				await self.overlay.clear_highlights()
			except Exception as e:
				logger.debug(f'Clearing highlights failed: {e}')

		result = f'Clicked element {uid} at {round(x)},{round(y)}{" (Double Click)" if dbl_click else ""}'
		if switched:
			result += '\nNew tab opened and switched automatically.'
		return result

	async def _dispatch_click(self, x: float, y: float, dbl_click: bool) -> None:
		await self.cmd('Input.dispatchMouseEvent', {'type': 'mouseMoved', 'x': x, 'y': y})
		click_counts = (1, 2) if dbl_click else (1,)
		for click_count in click_counts:
			for event_type in ('mousePressed', 'mouseReleased'):
				await self.cmd(
					'Input.dispatchMouseEvent',
					{'type': event_type, 'x': x, 'y': y, 'button': 'left', 'clickCount': click_count},
				)

	async def _follow_new_tab(self, waiter: 'asyncio.Future[Any]') -> bool:
		try:
			logger.debug('⏳ Waiting for new tab to open...')
			new_tab = await self.connection.wait_for_new_tab(NEW_TAB_TIMEOUT, waiter=waiter)
			await asyncio.sleep(NEW_TAB_SETTLE_DELAY)
			await self.connection.switch_to_tab(new_tab.target_id, True)
			logger.info(f'🔀 Followed new tab {short_id(new_tab.target_id)}')
			if self.overlay is not None:
				await self.overlay.update_status(f'Switched to new tab (Tab {short_id(new_tab.target_id)})')
			return True
		except Exception as e:
			# the link may have opened in the same tab
			logger.warning(f'⚠️ Failed to handle new tab: {type(e).__name__}: {e}')
			return False

	async def _pre_click_checks(self, uid: str, object_id: str) -> None:
		"""Give the element up to 3s each to become visible and enabled. Never raises."""
		try:
			if not await self._is_visible(object_id):
				logger.warning(f'⚠️ Element {uid} is not visible, waiting...')
				if not await self.wait.wait_for_condition(_VISIBLE_CONDITION, timeout=PRECHECK_TIMEOUT, object_id=object_id):
					raise ActionError(f'Element {uid} is not visible')

			if await self._is_disabled(object_id):
				logger.warning(f'⚠️ Element {uid} is disabled, waiting...')
				if not await self.wait.wait_for_condition(_ENABLED_CONDITION, timeout=PRECHECK_TIMEOUT, object_id=object_id):
					raise ActionError(f'Element {uid} is disabled')
		except Exception as e:
			# let the click itself fail if the element really is unusable
			logger.warning(f'⚠️ Pre-click check failed: {e}')

	async def _is_visible(self, object_id: str) -> bool:
		try:
			return await self.call_function_on(object_id, _IS_VISIBLE_JS) is True
		except Exception:
			return False

	async def _is_disabled(self, object_id: str) -> bool:
		try:
			return await self.call_function_on(object_id, _IS_DISABLED_JS) is True
		except Exception:
			return False

	async def _is_parent_disabled(self, object_id: str) -> bool:
		try:
			return await self.call_function_on(object_id, _IS_PARENT_DISABLED_JS) is True
		except Exception:
			return False

	async def _js_click_fallback(self, uid: str, dbl_click: bool = False) -> str:
		logger.debug(f'🪄 Attempting script click for {uid}')
		object_id = await self.get_object_id(uid)

		async def run() -> Any:
			return await self.call_function_on(object_id, _JS_CLICK, arguments=[{'value': dbl_click}])

		value = await self.wait.execute(run)
		if isinstance(value, dict):
			if value.get('shadowRoot'):
				logger.debug(f'🪄 Script click delivered into shadow DOM for {uid}')
			if value.get('isOption'):
				logger.debug(f'🪄 Selected <option> {uid} through its <select>')

		return f'Clicked element {uid} (JS Fallback{" - Double Click" if dbl_click else ""})'

	async def drag_element(self, from_uid: str | None, to_uid: str | None) -> str:
		if not from_uid or not to_uid:
			return "Error: 'from_uid' and 'to_uid' are required."

		try:
			from_object_id = await self.get_object_id(from_uid)
			to_object_id = await self.get_object_id(to_uid)
			start_x, start_y = await self.get_click_point(from_uid, from_object_id)
			end_x, end_y = await self.get_click_point(to_uid, to_object_id)

			async def drag() -> None:
				await self.cmd('Input.dispatchMouseEvent', {'type': 'mouseMoved', 'x': start_x, 'y': start_y})
				await self.cmd(
					'Input.dispatchMouseEvent',
					{'type': 'mousePressed', 'x': start_x, 'y': start_y, 'button': 'left', 'clickCount': 1},
				)
				for step in range(1, DRAG_STEPS + 1):
					x = start_x + (end_x - start_x) * (step / DRAG_STEPS)
					y = start_y + (end_y - start_y) * (step / DRAG_STEPS)
					await self.cmd('Input.dispatchMouseEvent', {'type': 'mouseMoved', 'x': x, 'y': y, 'button': 'left'})
					await asyncio.sleep(DRAG_STEP_DELAY)
				await self.cmd(
					'Input.dispatchMouseEvent',
					{'type': 'mouseReleased', 'x': end_x, 'y': end_y, 'button': 'left', 'clickCount': 1},
				)

			await self.wait.execute(drag)
			return f'Dragged element {from_uid} to {to_uid}.'
		except Exception as e:
			return f'Error dragging element: {e}'

	async def hover(self, uid: str) -> str:
		object_id = await self.get_object_id(uid)

		try:
			x, y = await self.get_click_point(uid, object_id)
			# tooltips and menus need a moment to render
			await self.wait.wait_for_stable_dom(1.5, 0.2)
			await self.cmd('Input.dispatchMouseEvent', {'type': 'mouseMoved', 'x': x, 'y': y})
			return f'Hovered element {uid} at {round(x)},{round(y)}'
		except Exception as e:
			logger.warning(f'⚠️ Hover on {uid} failed: {e}')
			return f'Error hovering element {uid}: {e}'
