from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolCall(BaseModel):
	"""One requested tool invocation"""

	name: str
	args: dict[str, Any] = Field(default_factory=dict)


class ImageToolResult(BaseModel):
	"""Result of a screenshot-like tool: base64 image data plus a caption"""

	image: str
	text: str
	mime_type: str = 'image/png'


ToolResult = str | ImageToolResult


# Action Input Models
class NoParamsAction(BaseModel):
	"""
	Accepts absolutely anything in the incoming data
	and discards it, so the final parsed model is empty.
	"""

	model_config = ConfigDict(extra='ignore')


class NavigatePageAction(BaseModel):
	url: str | None = None
	type: Literal['back', 'forward', 'reload'] | None = None


class NewPageAction(BaseModel):
	url: str | None = None


class PageIndexAction(BaseModel):
	index: int | None = None


class SwitchToTabAction(BaseModel):
	tab_id: str = Field(description='Target id of the tab to switch to')
	push_to_stack: bool = True


class ClickAction(BaseModel):
	uid: str
	dbl_click: bool = False
	max_retries: int = Field(default=3, ge=1)
	retry_delay: float = Field(default=0.5, ge=0, description='Base delay between attempts in seconds')
	wait_for_interactive: bool = True


class DragElementAction(BaseModel):
	from_uid: str | None = None
	to_uid: str | None = None


class UidAction(BaseModel):
	uid: str


class FillAction(BaseModel):
	uid: str
	value: str


class FillFormElement(BaseModel):
	uid: str
	value: str


class FillFormAction(BaseModel):
	elements: list[FillFormElement]


class PressKeyAction(BaseModel):
	key: str


class TakeSnapshotAction(BaseModel):
	verbose: bool = False
	force_refresh: bool = False


class TakeScreenshotAction(BaseModel):
	format: Literal['png', 'jpeg', 'webp'] = 'png'
	quality: int | None = Field(default=None, ge=0, le=100)
	full_page: bool = False


class EvaluateScriptAction(BaseModel):
	script: str = Field(description='JavaScript expression or function body to evaluate in the page')


class WaitForAction(BaseModel):
	text: str | None = Field(default=None, description='Wait until this text appears on the page')
	expression: str | None = Field(default=None, description='Wait until this JavaScript expression is truthy')
	network_idle: bool = False
	timeout: float = Field(default=10.0, gt=0, description='Seconds')


class GetLogsAction(BaseModel):
	limit: int | None = Field(default=None, ge=1)


class ListNetworkRequestsAction(BaseModel):
	page_size: int = Field(default=50, ge=1)
	page_idx: int = Field(default=0, ge=0)
	resource_types: list[str] | None = None


class StartTraceAction(BaseModel):
	categories: list[str] | None = None


class RequestUserHelpAction(BaseModel):
	message: str = 'Please complete the task manually'
