import logging

from browser_control.actions.base import BaseActionHandler

logger = logging.getLogger(__name__)


class NavigationActions(BaseActionHandler):
	"""Tab and history navigation. Page-affecting calls run inside the wait coordinator."""

	@property
	def tabs(self):
		return self.connection.tabs

	async def navigate_page(self, url: str | None = None, type: str | None = None) -> str:
		# the intended target still works when the attach itself failed
		target_id = self.connection.current_target_id or self.connection.target_id
		if not target_id:
			return 'Error: No target tab identified.'

		action = ''

		async def run() -> None:
			nonlocal action
			if type == 'back':
				if await self.tabs.go_back(target_id):
					action = 'Navigated back'
				else:
					action = 'Error: Cannot navigate back, no earlier page in history.'
			elif type == 'forward':
				if await self.tabs.go_forward(target_id):
					action = 'Navigated forward'
				else:
					action = 'Error: Cannot navigate forward, no later page in history.'
			elif type == 'reload':
				await self.tabs.reload(target_id)
				action = 'Reloaded page'
			elif url:
				await self.tabs.navigate(target_id, url)
				action = f'Navigating to {url}'

		await self.wait.execute(run)
		if action:
			logger.info(f'🧭 {action}')
		return action or 'Error: Invalid navigation arguments.'

	async def new_page(self, url: str | None = None) -> str:
		target_url = url or 'about:blank'
		target_id = await self.tabs.create_tab(target_url)
		return f'Created new page (id: {target_id}) loading {target_url}'

	async def close_page(self, index: int | None = None) -> str:
		if index is None:
			return "Error: 'index' is required."
		tabs = await self.tabs.list_tabs()
		if not 0 <= index < len(tabs):
			return f'Error: Page index {index} not found.'

		tab = tabs[index]
		await self.tabs.close_tab(tab.target_id)
		return f'Closed page {index}: {tab.title or "Untitled"}'

	async def list_pages(self) -> str:
		tabs = await self.tabs.list_tabs()
		return '\n'.join(f'{idx}: {tab.title} ({tab.url})' for idx, tab in enumerate(tabs))

	async def select_page(self, index: int) -> str:
		tabs = await self.tabs.list_tabs()
		if not 0 <= index < len(tabs):
			return f'Error: Index {index} not found.'

		tab = tabs[index]
		await self.connection.switch_to_tab(tab.target_id, push_current=False)
		return f'Switched to page {index}: {tab.title}'

	async def switch_to_tab(self, tab_id: str, push_to_stack: bool = True) -> str:
		try:
			await self.connection.switch_to_tab(tab_id, push_to_stack)
			tab = await self.tabs.get_tab(tab_id)
			return f'Switched to tab {tab_id}: {(tab.title if tab else "") or "Untitled"}'
		except Exception as e:
			return f'Error switching to tab {tab_id}: {e}'

	async def return_to_previous_tab(self) -> str:
		try:
			if not await self.connection.return_to_previous_tab():
				return 'No previous tab in stack to return to'
			tab = await self.tabs.get_tab(self.connection.target_id)
			return f'Returned to previous tab: {(tab.title if tab else "") or "Untitled"}'
		except Exception as e:
			return f'Error returning to previous tab: {e}'

	async def get_tab_stack(self) -> str:
		stack = self.connection.tab_stack
		if not stack:
			return 'Tab stack is empty'

		titles = {tab.target_id: tab.title for tab in await self.tabs.list_tabs()}
		lines = []
		for target_id in stack:
			if target_id in titles:
				lines.append(f'  {target_id}: {titles[target_id] or "Untitled"}')
			else:
				lines.append(f'  {target_id}: (Tab no longer exists)')
		return f'Tab stack ({len(stack)} tabs):\n' + '\n'.join(lines)

	async def clear_tab_stack(self) -> str:
		self.connection.clear_tab_stack()
		return 'Tab stack cleared'
