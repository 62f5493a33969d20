import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from browser_control.actions.service import ActionExecutor
from browser_control.controller.registry.service import Registry
from browser_control.controller.views import (
	ClickAction,
	DragElementAction,
	EvaluateScriptAction,
	FillAction,
	FillFormAction,
	GetLogsAction,
	ImageToolResult,
	ListNetworkRequestsAction,
	NavigatePageAction,
	NewPageAction,
	NoParamsAction,
	PageIndexAction,
	PressKeyAction,
	RequestUserHelpAction,
	StartTraceAction,
	SwitchToTabAction,
	TakeScreenshotAction,
	TakeSnapshotAction,
	ToolResult,
	UidAction,
	WaitForAction,
)

if TYPE_CHECKING:
	from browser_control.control.service import TransactionOrchestrator

logger = logging.getLogger(__name__)

Context = TypeVar('Context')


class Controller(Generic[Context]):
	"""The tool table: every name a caller may invoke, bound to an ActionExecutor method."""

	def __init__(self, exclude_actions: list[str] | None = None):
		self.registry = Registry[Context](exclude_actions)
		self._register_default_actions()

	def _register_default_actions(self) -> None:
		# Snapshot

		@self.registry.action(
			'Take a text snapshot of the page accessibility tree. Elements carry a uid usable by other tools.',
			param_model=TakeSnapshotAction,
		)
		async def take_snapshot(params: TakeSnapshotAction, executor: ActionExecutor) -> str:
			return await executor.take_snapshot(verbose=params.verbose, force_refresh=params.force_refresh)

		# Mouse

		@self.registry.action('Click the element with the given uid', param_model=ClickAction)
		async def click(params: ClickAction, executor: ActionExecutor) -> str:
			return await executor.click(
				params.uid,
				dbl_click=params.dbl_click,
				max_retries=params.max_retries,
				retry_delay=params.retry_delay,
				wait_for_interactive=params.wait_for_interactive,
			)

		@self.registry.action('Drag one element onto another', param_model=DragElementAction)
		async def drag_element(params: DragElementAction, executor: ActionExecutor) -> str:
			return await executor.drag_element(params.from_uid, params.to_uid)

		@self.registry.action('Hover over the element with the given uid', param_model=UidAction)
		async def hover(params: UidAction, executor: ActionExecutor) -> str:
			return await executor.hover(params.uid)

		# Keyboard

		@self.registry.action('Type a value into an input, textarea, select or contenteditable element', param_model=FillAction)
		async def fill(params: FillAction, executor: ActionExecutor) -> str:
			return await executor.fill(params.uid, params.value)

		@self.registry.action('Fill several form elements in order', param_model=FillFormAction)
		async def fill_form(params: FillFormAction, executor: ActionExecutor) -> str:
			return await executor.fill_form([element.model_dump() for element in params.elements])

		@self.registry.action('Press a key such as Enter, Tab, Escape or ArrowDown, or type a single character', param_model=PressKeyAction)
		async def press_key(params: PressKeyAction, executor: ActionExecutor) -> str:
			return await executor.press_key(params.key)

		# Navigation

		@self.registry.action('Navigate to a url, or go back/forward/reload', param_model=NavigatePageAction)
		async def navigate_page(params: NavigatePageAction, executor: ActionExecutor) -> str:
			return await executor.navigation.navigate_page(url=params.url, type=params.type)

		@self.registry.action('Open a new tab', param_model=NewPageAction)
		async def new_page(params: NewPageAction, executor: ActionExecutor) -> str:
			return await executor.navigation.new_page(params.url)

		@self.registry.action('Close the tab at the given index', param_model=PageIndexAction)
		async def close_page(params: PageIndexAction, executor: ActionExecutor) -> str:
			return await executor.navigation.close_page(params.index)

		@self.registry.action('List open tabs with their index, title and url', param_model=NoParamsAction)
		async def list_pages(executor: ActionExecutor) -> str:
			return await executor.navigation.list_pages()

		@self.registry.action('Switch to the tab at the given index', param_model=PageIndexAction)
		async def select_page(params: PageIndexAction, executor: ActionExecutor) -> str:
			if params.index is None:
				return "Error: 'index' is required."
			return await executor.navigation.select_page(params.index)

		@self.registry.action('Switch to a tab by target id, remembering the current one', param_model=SwitchToTabAction)
		async def switch_to_tab(params: SwitchToTabAction, executor: ActionExecutor) -> str:
			return await executor.navigation.switch_to_tab(params.tab_id, params.push_to_stack)

		@self.registry.action('Return to the tab that was active before the last switch', param_model=NoParamsAction)
		async def return_to_previous_tab(executor: ActionExecutor) -> str:
			return await executor.navigation.return_to_previous_tab()

		@self.registry.action('Show the stack of previously active tabs', param_model=NoParamsAction)
		async def get_tab_stack(executor: ActionExecutor) -> str:
			return await executor.navigation.get_tab_stack()

		@self.registry.action('Forget all previously active tabs', param_model=NoParamsAction)
		async def clear_tab_stack(executor: ActionExecutor) -> str:
			return await executor.navigation.clear_tab_stack()

		# Observation

		@self.registry.action('Capture a screenshot of the page', param_model=TakeScreenshotAction)
		async def take_screenshot(params: TakeScreenshotAction, executor: ActionExecutor) -> ImageToolResult:
			return await executor.observation.take_screenshot(params.format, params.quality, params.full_page)

		@self.registry.action(
			'Evaluate JavaScript in the page and return the JSON result',
			param_model=EvaluateScriptAction,
			aliases=['run_javascript', 'run_script'],
		)
		async def evaluate_script(params: EvaluateScriptAction, executor: ActionExecutor) -> str:
			return await executor.observation.evaluate_script(params.script)

		@self.registry.action('Wait for text to appear, an expression to become true, or the network to go idle', param_model=WaitForAction)
		async def wait_for(params: WaitForAction, executor: ActionExecutor) -> str:
			return await executor.observation.wait_for(
				text=params.text, expression=params.expression, network_idle=params.network_idle, timeout=params.timeout
			)

		@self.registry.action('Show recent console messages', param_model=GetLogsAction)
		async def get_logs(params: GetLogsAction, executor: ActionExecutor) -> str:
			return await executor.observation.get_logs(params.limit)

		@self.registry.action('List network requests seen since the page was attached', param_model=ListNetworkRequestsAction)
		async def list_network_requests(params: ListNetworkRequestsAction, executor: ActionExecutor) -> str:
			return await executor.observation.list_network_requests(params.page_size, params.page_idx, params.resource_types)

		@self.registry.action('Start a performance trace', param_model=StartTraceAction, aliases=['start_trace'])
		async def performance_start_trace(params: StartTraceAction, executor: ActionExecutor) -> str:
			return await executor.observation.performance_start_trace(params.categories)

		@self.registry.action('Stop the performance trace and summarize it', param_model=NoParamsAction, aliases=['stop_trace'])
		async def performance_stop_trace(executor: ActionExecutor) -> str:
			return await executor.observation.performance_stop_trace()

		# Control

		@self.registry.action(
			'Pause and ask the user to do something by hand (login, CAPTCHA, 2FA), then continue',
			param_model=RequestUserHelpAction,
			aliases=['wait_for_user'],
		)
		async def request_user_help(params: RequestUserHelpAction, context: 'TransactionOrchestrator') -> str:
			if context is None:
				return 'Error: User intervention is not available.'
			result = await context.wait_for_user_intervention(params.message)
			return result.to_text()

	async def act(self, name: str, args: dict[str, Any], executor: ActionExecutor, context: Context | None = None) -> ToolResult:
		"""Run one tool by name. Raises ValueError for an unknown name."""
		return await self.registry.execute_action(name, args, executor=executor, context=context)
