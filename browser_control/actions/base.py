import asyncio
import logging
from typing import TYPE_CHECKING, Any

from browser_control.browser.views import StaleUidError
from browser_control.browser.wait import WaitCoordinator

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager
	from browser_control.control.overlay import ControlOverlay
	from browser_control.dom.service import SnapshotManager

logger = logging.getLogger(__name__)

HIGHLIGHT_DURATION = 1.5

HIGHLIGHT_CONFIG = {
	'showInfo': True,
	'showRulers': False,
	'showExtensionLines': False,
	'contentColor': {'r': 11, 'g': 87, 'b': 208, 'a': 0.3},
	'paddingColor': {'r': 11, 'g': 87, 'b': 208, 'a': 0.1},
	'borderColor': {'r': 11, 'g': 87, 'b': 208, 'a': 0.8},
}


def quad_center(quad: list[float]) -> tuple[float, float]:
	"""Midpoint of the diagonal between the first and third corner of a box-model quad."""
	return (quad[0] + quad[4]) / 2, (quad[1] + quad[5]) / 2


class BaseActionHandler:
	"""Shared plumbing for action groups: the session, the UID table, and the wait coordinator."""

	def __init__(
		self,
		connection: 'ConnectionManager',
		snapshot_manager: 'SnapshotManager',
		wait: WaitCoordinator | None = None,
		overlay: 'ControlOverlay | None' = None,
	):
		self.connection = connection
		self.snapshot_manager = snapshot_manager
		self.wait = wait or WaitCoordinator(connection)
		self.overlay = overlay
		self._background_tasks: set[asyncio.Task[Any]] = set()

	async def cmd(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		return await self.connection.call(method, params)

	async def get_object_id(self, uid: str) -> str:
		"""Resolve a snapshot UID to a live remote object id.

		Raises StaleUidError, with a freshly taken snapshot in the message, when the UID
		is not part of the current snapshot.
		"""
		backend_node_id = self.snapshot_manager.get_backend_node_id(uid)
		if not backend_node_id:
			new_snapshot = await self.snapshot_manager.take_snapshot(force_refresh=True)
			raise StaleUidError(
				f'Node with uid {uid} not found in snapshot. The page may have changed.\n'
				'A new snapshot has been taken. Please re-analyze and choose a new UID.\n\n'
				f'Latest page structure:\n{new_snapshot}',
				details={'uid': uid, 'refreshed': True},
			)

		self._spawn(self.highlight(uid))

		result = await self.cmd('DOM.resolveNode', {'backendNodeId': backend_node_id})
		return result['object']['objectId']

	async def get_click_point(self, uid: str, object_id: str) -> tuple[float, float]:
		"""Scroll the node into view and return the center of its content quad."""
		backend_node_id = self.snapshot_manager.get_backend_node_id(uid)
		await self.cmd('DOM.scrollIntoViewIfNeeded', {'objectId': object_id})
		result = await self.cmd('DOM.getBoxModel', {'backendNodeId': backend_node_id})
		model = (result or {}).get('model')
		if not model or not model.get('content'):
			raise ValueError(f'No box model found for {uid}')
		return quad_center(model['content'])

	async def call_function_on(self, object_id: str, function_declaration: str, **kwargs: Any) -> Any:
		"""Run a function with `this` bound to the object and return its JSON value."""
		result = await self.cmd(
			'Runtime.callFunctionOn',
			{'objectId': object_id, 'functionDeclaration': function_declaration, 'returnByValue': True, **kwargs},
		)
		return (result or {}).get('result', {}).get('value')

	async def highlight(self, uid: str) -> None:
		"""Transient protocol-level highlight of the node. Never raises."""
		backend_node_id = self.snapshot_manager.get_backend_node_id(uid)
		if not backend_node_id:
			return

		try:
			await self.cmd('Overlay.enable')
			await self.cmd('Overlay.highlightNode', {'backendNodeId': backend_node_id, 'highlightConfig': HIGHLIGHT_CONFIG})
		except Exception as e:
			logger.debug(f'Highlight of {uid} skipped: {type(e).__name__}: {e}')
			return

		self._spawn(self._hide_highlight_later())

	async def _hide_highlight_later(self) -> None:
		await asyncio.sleep(HIGHLIGHT_DURATION)
		try:
			await self.cmd('Overlay.hideHighlight')
		except Exception as e:
			logger.debug(f'Overlay.hideHighlight failed: {e}')

	def _spawn(self, coro: Any) -> None:
		task = asyncio.create_task(coro)
		self._background_tasks.add(task)
		task.add_done_callback(self._background_tasks.discard)
