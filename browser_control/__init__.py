"""
browser_control: drive a live page over the Chrome DevTools Protocol.

`TransactionOrchestrator.connect()` is the usual entry point; hand it `ToolCall`s and
get back text (or an image) for each one.
"""

from browser_control.actions.service import ActionExecutor
from browser_control.browser.connection import ConnectionManager
from browser_control.control.service import TransactionOrchestrator
from browser_control.controller.service import Controller
from browser_control.controller.views import ImageToolResult, ToolCall, ToolResult
from browser_control.dom.service import SnapshotManager

__all__ = [
	'ActionExecutor',
	'ConnectionManager',
	'Controller',
	'ImageToolResult',
	'SnapshotManager',
	'ToolCall',
	'ToolResult',
	'TransactionOrchestrator',
]
