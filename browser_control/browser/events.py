"""Events dispatched on the control event bus.

Subscribers register with `event_bus.on(TabCreatedEvent, handler)`. The events are
notifications only: nothing in the core waits on their handlers.
"""

from typing import Any

from bubus import BaseEvent
from cdp_use.cdp.target import TargetID


class TargetAttachedEvent(BaseEvent[None]):
	"""The debugger attached to a page target"""

	target_id: TargetID
	session_id: str


class TargetDetachedEvent(BaseEvent[None]):
	"""The debugger attachment was released, or the attached page went away"""

	target_id: TargetID
	reason: str = 'detach'


class TabCreatedEvent(BaseEvent[None]):
	target_id: TargetID
	url: str = ''
	opener_id: TargetID | None = None


class TabClosedEvent(BaseEvent[None]):
	target_id: TargetID


class ActionProgressEvent(BaseEvent[None]):
	"""Watchdog progress: start, heartbeat, success, error or retry"""

	stage: str
	action_name: str
	payload: dict[str, Any] = {}


class ControlStateChangedEvent(BaseEvent[None]):
	previous: str
	current: str
	reason: str = ''
