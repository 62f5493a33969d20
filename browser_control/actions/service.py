import logging
from typing import TYPE_CHECKING

from browser_control.actions.keyboard import KeyboardActions
from browser_control.actions.mouse import MouseActions
from browser_control.actions.navigation import NavigationActions
from browser_control.actions.observation import ObservationActions
from browser_control.browser.wait import WaitCoordinator
from browser_control.dom.service import SnapshotManager

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager
	from browser_control.control.overlay import ControlOverlay

logger = logging.getLogger(__name__)


class ActionExecutor:
	"""
	One object per connection that groups every page action.

	All groups share the same SnapshotManager (UID table) and WaitCoordinator, so a
	UID minted by `take_snapshot` resolves in any of them.
	"""

	def __init__(
		self,
		connection: 'ConnectionManager',
		snapshot_manager: SnapshotManager | None = None,
		wait: WaitCoordinator | None = None,
		overlay: 'ControlOverlay | None' = None,
	):
		self.connection = connection
		self.snapshot_manager = snapshot_manager or SnapshotManager(connection)
		self.wait = wait or WaitCoordinator(connection)
		self.overlay = overlay

		handler_args = (connection, self.snapshot_manager, self.wait, overlay)
		self.mouse = MouseActions(*handler_args)
		self.keyboard = KeyboardActions(*handler_args)
		self.navigation = NavigationActions(*handler_args)
		self.observation = ObservationActions(*handler_args)

	async def take_snapshot(self, verbose: bool = False, force_refresh: bool = False) -> str:
		return await self.snapshot_manager.take_snapshot(verbose=verbose, force_refresh=force_refresh)

	# Mouse
	async def click(self, uid: str, **options) -> str:
		return await self.mouse.click(uid, **options)

	async def drag_element(self, from_uid: str | None, to_uid: str | None) -> str:
		return await self.mouse.drag_element(from_uid, to_uid)

	async def hover(self, uid: str) -> str:
		return await self.mouse.hover(uid)

	# Keyboard
	async def fill(self, uid: str, value: str) -> str:
		return await self.keyboard.fill(uid, value)

	async def fill_form(self, elements: list[dict[str, str]]) -> str:
		return await self.keyboard.fill_form(elements)

	async def press_key(self, key: str) -> str:
		return await self.keyboard.press_key(key)
