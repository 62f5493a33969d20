"""
Page actions package.

Each module groups one kind of interaction; ActionExecutor wires them to a shared
snapshot table and wait coordinator.
"""

from .base import BaseActionHandler
from .keyboard import KeyboardActions
from .mouse import MouseActions
from .navigation import NavigationActions
from .observation import ObservationActions
from .service import ActionExecutor

__all__ = [
	'ActionExecutor',
	'BaseActionHandler',
	'KeyboardActions',
	'MouseActions',
	'NavigationActions',
	'ObservationActions',
]
