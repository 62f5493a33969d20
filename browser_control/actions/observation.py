import json
import logging
from collections import Counter
from typing import Any

from browser_control.actions.base import BaseActionHandler
from browser_control.controller.views import ImageToolResult

logger = logging.getLogger(__name__)

DEFAULT_TRACE_CATEGORIES = [
	'-*',
	'devtools.timeline',
	'disabled-by-default-devtools.timeline',
	'disabled-by-default-devtools.timeline.frame',
	'loading',
	'blink.user_timing',
	'v8.execute',
]


class ObservationActions(BaseActionHandler):
	"""Read-only page inspection: screenshots, script evaluation, waits, logs and traces."""

	async def take_screenshot(self, format: str = 'png', quality: int | None = None, full_page: bool = False) -> ImageToolResult:
		params: dict[str, Any] = {'format': format, 'captureBeyondViewport': full_page}
		if quality is not None and format != 'png':
			params['quality'] = quality

		result = await self.cmd('Page.captureScreenshot', params)
		logger.debug(f'📸 Screenshot captured ({format}, {len(result["data"])} bytes base64)')
		return ImageToolResult(
			image=result['data'],
			text=f'Screenshot captured{" (full page)" if full_page else ""}.',
			mime_type=f'image/{format}',
		)

	async def evaluate_script(self, script: str) -> str:
		async def run() -> dict[str, Any]:
			return await self.cmd(
				'Runtime.evaluate',
				{'expression': script, 'returnByValue': True, 'awaitPromise': True},
			)

		result = await self.wait.execute(run)
		exception = (result or {}).get('exceptionDetails')
		if exception:
			description = exception.get('exception', {}).get('description') or exception.get('text', 'Unknown error')
			return f'Error evaluating script: {description}'

		value = (result or {}).get('result', {}).get('value')
		if value is None:
			return 'Script executed. Result: undefined'
		return f'Script executed. Result: {json.dumps(value, ensure_ascii=False, default=str)}'

	async def wait_for(
		self,
		text: str | None = None,
		expression: str | None = None,
		network_idle: bool = False,
		timeout: float = 10.0,
	) -> str:
		if text:
			condition = f'!!document.body && document.body.innerText.includes({json.dumps(text)})'
			if await self.wait.wait_for_condition(condition, timeout=timeout):
				return f'Text "{text}" appeared on the page.'
			return f'Error: Text "{text}" did not appear within {timeout}s.'

		if expression:
			if await self.wait.wait_for_condition(expression, timeout=timeout):
				return f'Condition met: {expression}'
			return f'Error: Condition {expression} was not met within {timeout}s.'

		if network_idle:
			if await self.wait.wait_for_network_idle(timeout=timeout):
				return 'Network is idle.'
			return f'Error: Network did not become idle within {timeout}s.'

		return "Error: one of 'text', 'expression' or 'network_idle' is required."

	async def get_logs(self, limit: int | None = None) -> str:
		return self.connection.collector.format_logs(limit)

	async def list_network_requests(
		self, page_size: int = 50, page_idx: int = 0, resource_types: list[str] | None = None
	) -> str:
		return self.connection.collector.format_requests(page_size=page_size, page_idx=page_idx, resource_types=resource_types)

	async def performance_start_trace(self, categories: list[str] | None = None) -> str:
		await self.connection.start_tracing(categories or DEFAULT_TRACE_CATEGORIES)
		logger.info('⏺️ Performance trace started')
		return 'Performance trace started. Perform the actions to measure, then call performance_stop_trace.'

	async def performance_stop_trace(self) -> str:
		events = await self.connection.stop_tracing()
		logger.info(f'⏹️ Performance trace stopped with {len(events)} events')
		return summarize_trace(events)


def summarize_trace(events: list[dict[str, Any]]) -> str:
	if not events:
		return 'Performance trace stopped. No trace events were collected.'

	timestamps = [event['ts'] for event in events if isinstance(event.get('ts'), (int, float)) and event['ts'] > 0]
	# trace timestamps are microseconds
	duration_ms = (max(timestamps) - min(timestamps)) / 1000 if timestamps else 0.0

	lines = [f'Performance trace stopped. Collected {len(events)} events over {duration_ms:.0f}ms.', 'Most frequent events:']
	for name, count in Counter(event.get('name', '?') for event in events).most_common(10):
		lines.append(f'  {name}: {count}')
	return '\n'.join(lines)
