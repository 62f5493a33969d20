"""Host tab-management primitives over the CDP Target domain.

These work whether or not the ConnectionManager is attached: page-level commands reuse
the main session when it points at the same target and otherwise open a short-lived
flattened session of their own.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from cdp_use.cdp.target import TargetID

from browser_control.browser.views import BrowserError, TabInfo
from browser_control.utils import short_id

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)


class TabHost:
	def __init__(self, connection: 'ConnectionManager'):
		self.connection = connection

	@property
	def cdp_client(self):
		return self.connection.cdp_client

	async def list_tabs(self) -> list[TabInfo]:
		"""All page targets, in the order the browser reports them."""
		targets = await self.cdp_client.send.Target.getTargets()
		return [TabInfo.from_target_info(t) for t in targets['targetInfos'] if t.get('type') == 'page']

	async def get_tab(self, target_id: TargetID) -> TabInfo | None:
		for tab in await self.list_tabs():
			if tab.target_id == target_id:
				return tab
		return None

	async def create_tab(self, url: str = 'about:blank') -> TargetID:
		result = await self.cdp_client.send.Target.createTarget(params={'url': url})
		target_id = result['targetId']
		logger.debug(f'📄 Created tab {short_id(target_id)} loading {url}')
		return target_id

	async def close_tab(self, target_id: TargetID) -> None:
		await self.cdp_client.send.Target.closeTarget(params={'targetId': target_id})

	async def activate_tab(self, target_id: TargetID) -> None:
		await self.cdp_client.send.Target.activateTarget(params={'targetId': target_id})

	@asynccontextmanager
	async def page_session(self, target_id: TargetID) -> AsyncIterator[str]:
		"""Yield a session id usable for Page.* commands on `target_id`."""
		connection = self.connection
		if connection.attached and connection.current_target_id == target_id and connection.session_id:
			yield connection.session_id
			return

		result = await self.cdp_client.send.Target.attachToTarget(params={'targetId': target_id, 'flatten': True})
		session_id = result['sessionId']
		try:
			yield session_id
		finally:
			try:
				await self.cdp_client.send.Target.detachFromTarget(params={'sessionId': session_id})
			except Exception as e:
				logger.debug(f'Failed to release transient session on {short_id(target_id)}: {e}')

	async def navigate(self, target_id: TargetID, url: str) -> None:
		async with self.page_session(target_id) as session_id:
			result = await self.cdp_client.send.Page.navigate(params={'url': url}, session_id=session_id)
		error_text = (result or {}).get('errorText')
		if error_text:
			raise BrowserError(f'Navigation to {url} failed: {error_text}')

	async def go_back(self, target_id: TargetID) -> bool:
		return await self._go_to_history_offset(target_id, -1)

	async def go_forward(self, target_id: TargetID) -> bool:
		return await self._go_to_history_offset(target_id, 1)

	async def reload(self, target_id: TargetID) -> None:
		async with self.page_session(target_id) as session_id:
			await self.cdp_client.send.Page.reload(params={}, session_id=session_id)

	async def _go_to_history_offset(self, target_id: TargetID, offset: int) -> bool:
		async with self.page_session(target_id) as session_id:
			history = await self.cdp_client.send.Page.getNavigationHistory(session_id=session_id)
			index = history['currentIndex'] + offset
			entries = history['entries']
			if index < 0 or index >= len(entries):
				return False
			await self.cdp_client.send.Page.navigateToHistoryEntry(params={'entryId': entries[index]['id']}, session_id=session_id)
			return True
