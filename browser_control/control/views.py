from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ControlState(str, Enum):
	"""Control-mode lifecycle: INACTIVE -> ACTIVE -> (INTERVENING -> ACTIVE)* -> INACTIVE"""

	INACTIVE = 'inactive'
	ACTIVE = 'active'
	INTERVENING = 'intervening'


ErrorType = Literal['non_retryable', 'timeout', 'network', 'stale_context', 'element_interaction', 'retryable']


@dataclass(frozen=True)
class ErrorClassification:
	type: ErrorType
	retryable: bool

	def to_dict(self) -> dict[str, Any]:
		return {'type': self.type, 'retryable': self.retryable}


@dataclass
class BlockingElement:
	"""Something on the page only a human can get past."""

	type: Literal['captcha', 'password', 'modal', 'otp']
	message: str


class InterventionResult(BaseModel):
	"""How a user-intervention pause ended"""

	status: Literal['continued', 'stopped', 'already_waiting']
	page_changed: bool = False
	note: str | None = None
	events: list[dict[str, Any]] = Field(default_factory=list)

	def to_text(self) -> str:
		if self.status == 'already_waiting':
			return 'Already waiting for user intervention.'
		if self.status == 'stopped':
			return 'Automation was stopped by the user.'

		text = 'User completed the intervention. Automation resumed.'
		if self.page_changed:
			text += ' The page changed while paused; take a new snapshot before acting.'
		if self.note:
			text += f'\nUser note: {self.note}'
		return text

