from typing import Any

from bubus import BaseEvent
from cdp_use.cdp.target import TargetID
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer

# URL prefixes the debugger is not allowed to script
RESTRICTED_URL_PREFIXES = ('chrome://', 'edge://', 'devtools://', 'chrome-extension://')


def is_restricted_url(url: str | None) -> bool:
	return bool(url) and url.startswith(RESTRICTED_URL_PREFIXES)


# Pydantic
class TabInfo(BaseModel):
	"""Represents information about a browser tab"""

	model_config = ConfigDict(
		extra='forbid',
		validate_by_name=True,
		validate_by_alias=True,
		populate_by_name=True,
	)

	url: str
	title: str
	target_id: TargetID = Field(serialization_alias='tab_id', validation_alias=AliasChoices('tab_id', 'target_id', 'targetId'))
	opener_id: TargetID | None = Field(
		default=None, serialization_alias='opener_tab_id', validation_alias=AliasChoices('opener_tab_id', 'opener_id', 'openerId')
	)  # page that opened this tab via window.open / target=_blank

	@field_serializer('target_id')
	def serialize_target_id(self, target_id: TargetID, _info: Any) -> str:
		return target_id[-4:]

	@field_serializer('opener_id')
	def serialize_opener_id(self, opener_id: TargetID | None, _info: Any) -> str | None:
		return opener_id[-4:] if opener_id else None

	@classmethod
	def from_target_info(cls, info: dict[str, Any]) -> 'TabInfo':
		return cls(
			target_id=info['targetId'],
			url=info.get('url', ''),
			title=info.get('title', ''),
			opener_id=info.get('openerId'),
		)


class BrowserError(Exception):
	"""Base class for all browser errors"""

	message: str
	details: dict[str, Any] | None = None
	while_handling_event: BaseEvent[Any] | None = None

	def __init__(self, message: str, details: dict[str, Any] | None = None, event: BaseEvent[Any] | None = None):
		self.message = message
		super().__init__(message)
		self.details = details
		self.while_handling_event = event

	def __str__(self) -> str:
		if self.while_handling_event is not None:
			return f'{self.message} (while handling event: {self.while_handling_event})'
		return self.message


class NoActiveSessionError(BrowserError):
	"""Raised when a protocol call is attempted with nothing attached"""

	def __init__(self, message: str = 'No active debugger session', details: dict[str, Any] | None = None):
		super().__init__(message, details)


class ActionError(BrowserError):
	"""An action failed after exhausting its own fallbacks"""


class NewTabTimeoutError(BrowserError):
	"""No page target was created inside the new-tab wait window"""


class NewTabWaitPendingError(BrowserError):
	"""A second new-tab wait was requested while one is still outstanding"""


class NonRetryableError(BrowserError):
	"""Raised when no amount of retrying can help; bypasses watchdog classification"""

	code = 'NON_RETRYABLE'


class StaleUidError(NonRetryableError):
	"""The UID is not part of the latest snapshot. The message embeds the refreshed snapshot."""


class ElementDisabledError(NonRetryableError):
	"""The target element (or its owning <select>) is disabled"""


class WatchdogTimeoutError(BrowserError):
	"""An action exceeded its watchdog deadline. Always classified as retryable."""

	code = 'WATCHDOG_TIMEOUT'

	def __init__(self, message: str, metadata: dict[str, Any] | None = None):
		super().__init__(message, metadata)
		self.metadata = dict(metadata or {})
