"""Visual-feedback collaborator used while the page is under automated control.

Rendering is out of scope here: the core only calls these hooks, and their failure
must never change an action's result.
"""

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)

CONTROL_HIGHLIGHT_CONFIG = {
	'showInfo': False,
	'contentColor': {'r': 250, 'g': 204, 'b': 21, 'a': 0.15},
	'borderColor': {'r': 250, 'g': 204, 'b': 21, 'a': 1.0},
}


class ControlOverlay(Protocol):
	visible: bool
	paused: bool

	async def show(self) -> None: ...

	async def hide(self) -> None: ...

	async def pause(self, message: str | None = None) -> None: ...

	async def resume(self) -> None: ...

	async def update_status(self, message: str) -> None: ...

	async def highlight_element(self, backend_node_id: int, label: str = '') -> None: ...

	async def show_click_feedback(self, x: float, y: float, kind: str = 'click') -> None: ...

	async def clear_highlights(self) -> None: ...


class NullOverlay:
	"""Overlay that records its visibility but draws nothing."""

	def __init__(self) -> None:
		self.visible = False
		self.paused = False

	async def show(self) -> None:
		self.visible = True
		self.paused = False

	async def hide(self) -> None:
		self.visible = False
		self.paused = False

	async def pause(self, message: str | None = None) -> None:
		if self.visible:
			self.paused = True

	async def resume(self) -> None:
		self.paused = False

	async def update_status(self, message: str) -> None:
		pass

	async def highlight_element(self, backend_node_id: int, label: str = '') -> None:
		pass

	async def show_click_feedback(self, x: float, y: float, kind: str = 'click') -> None:
		pass

	async def clear_highlights(self) -> None:
		pass


class CdpOverlay(NullOverlay):
	"""Minimal overlay backed by the protocol's own `Overlay` domain.

	Element highlights use `Overlay.highlightNode`. Status text and pause prompts are
	only logged.
	"""

	def __init__(self, connection: 'ConnectionManager'):
		super().__init__()
		self.connection = connection

	async def show(self) -> None:
		if self.visible:
			return
		await super().show()
		logger.info('🎮 Control mode overlay shown')

	async def hide(self) -> None:
		if not self.visible:
			return
		await super().hide()
		await self.clear_highlights()
		logger.info('🎮 Control mode overlay hidden')

	async def pause(self, message: str | None = None) -> None:
		if not self.visible or self.paused:
			return
		await super().pause(message)
		logger.info(f'⏸️ {message or "Paused - You can interact with the page"}')

	async def resume(self) -> None:
		if not self.paused:
			return
		await super().resume()
		logger.info('▶️ Control resumed')

	async def update_status(self, message: str) -> None:
		if self.visible:
			logger.info(f'🎮 {message}')

	async def highlight_element(self, backend_node_id: int, label: str = '') -> None:
		if not self.connection.attached:
			return
		try:
			await self.connection.call('Overlay.enable')
			await self.connection.call(
				'Overlay.highlightNode', {'backendNodeId': backend_node_id, 'highlightConfig': CONTROL_HIGHLIGHT_CONFIG}
			)
		except Exception as e:
			logger.debug(f'Overlay highlight failed: {type(e).__name__}: {e}')
			return
		if label:
			logger.debug(f'🎯 {label}')

	async def show_click_feedback(self, x: float, y: float, kind: str = 'click') -> None:
		logger.debug(f'🖱️ {kind} at {round(x)},{round(y)}')

	async def clear_highlights(self) -> None:
		if not self.connection.attached:
			return
		try:
			await self.connection.call('Overlay.hideHighlight')
		except Exception as e:
			logger.debug(f'Overlay.hideHighlight failed: {e}')
