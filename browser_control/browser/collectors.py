"""Passive observation of console output and network traffic for the attached page."""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 500
MAX_NETWORK_REQUESTS = 1000


@dataclass
class ConsoleEntry:
	level: str
	text: str
	source: str = 'console'
	url: str | None = None
	timestamp: float = field(default_factory=time.time)

	def format(self) -> str:
		location = f' ({self.url})' if self.url else ''
		return f'[{self.level}] {self.text}{location}'


@dataclass
class NetworkRequest:
	request_id: str
	url: str
	method: str = 'GET'
	resource_type: str = 'Other'
	status: int | None = None
	mime_type: str | None = None
	failed: bool = False
	error_text: str | None = None
	finished: bool = False
	timestamp: float = field(default_factory=time.time)

	def format(self) -> str:
		if self.failed:
			outcome = f'FAILED {self.error_text or ""}'.strip()
		elif self.status is not None:
			outcome = str(self.status)
		else:
			outcome = 'pending'
		return f'{self.method} {self.url} [{self.resource_type}] -> {outcome}'


class ObservationCollector:
	"""Keeps bounded buffers of console messages and network requests.

	Fed every protocol event from the attached session by the ConnectionManager and
	cleared whenever a new attachment starts.
	"""

	def __init__(self, max_logs: int = MAX_LOG_ENTRIES, max_requests: int = MAX_NETWORK_REQUESTS):
		self.logs: deque[ConsoleEntry] = deque(maxlen=max_logs)
		self.max_requests = max_requests
		self.requests: dict[str, NetworkRequest] = {}

	def clear(self) -> None:
		self.logs.clear()
		self.requests.clear()

	def handle_event(self, method: str, params: dict[str, Any]) -> None:
		handler = self._handlers.get(method)
		if handler is None:
			return
		try:
			handler(self, params or {})
		except Exception as e:
			logger.debug(f'Failed to collect {method}: {type(e).__name__}: {e}')

	# Console

	def _on_console_api_called(self, params: dict[str, Any]) -> None:
		parts = []
		for arg in params.get('args', []):
			if 'value' in arg:
				parts.append(str(arg['value']))
			elif 'description' in arg:
				parts.append(arg['description'])
			else:
				parts.append(arg.get('type', ''))
		self.logs.append(ConsoleEntry(level=params.get('type', 'log'), text=' '.join(parts)))

	def _on_exception_thrown(self, params: dict[str, Any]) -> None:
		details = params.get('exceptionDetails', {})
		exception = details.get('exception') or {}
		text = exception.get('description') or details.get('text', 'Uncaught exception')
		self.logs.append(ConsoleEntry(level='error', text=text, source='exception', url=details.get('url')))

	def _on_log_entry_added(self, params: dict[str, Any]) -> None:
		entry = params.get('entry', {})
		self.logs.append(
			ConsoleEntry(
				level=entry.get('level', 'info'),
				text=entry.get('text', ''),
				source=entry.get('source', 'other'),
				url=entry.get('url'),
			)
		)

	# Network

	def _on_request_will_be_sent(self, params: dict[str, Any]) -> None:
		request = params.get('request', {})
		request_id = params.get('requestId', '')
		self.requests[request_id] = NetworkRequest(
			request_id=request_id,
			url=request.get('url', ''),
			method=request.get('method', 'GET'),
			resource_type=params.get('type', 'Other'),
		)
		while len(self.requests) > self.max_requests:
			self.requests.pop(next(iter(self.requests)))

	def _on_response_received(self, params: dict[str, Any]) -> None:
		tracked = self.requests.get(params.get('requestId', ''))
		if tracked is None:
			return
		response = params.get('response', {})
		tracked.status = response.get('status')
		tracked.mime_type = response.get('mimeType')

	def _on_loading_finished(self, params: dict[str, Any]) -> None:
		tracked = self.requests.get(params.get('requestId', ''))
		if tracked is not None:
			tracked.finished = True

	def _on_loading_failed(self, params: dict[str, Any]) -> None:
		tracked = self.requests.get(params.get('requestId', ''))
		if tracked is not None:
			tracked.failed = True
			tracked.finished = True
			tracked.error_text = params.get('errorText')

	_handlers = {
		'Runtime.consoleAPICalled': _on_console_api_called,
		'Runtime.exceptionThrown': _on_exception_thrown,
		'Log.entryAdded': _on_log_entry_added,
		'Network.requestWillBeSent': _on_request_will_be_sent,
		'Network.responseReceived': _on_response_received,
		'Network.loadingFinished': _on_loading_finished,
		'Network.loadingFailed': _on_loading_failed,
	}

	# Reporting

	def format_logs(self, limit: int | None = None) -> str:
		entries = list(self.logs)
		if limit is not None:
			entries = entries[-limit:]
		if not entries:
			return 'No console messages captured.'
		return '\n'.join(entry.format() for entry in entries)

	def list_requests(self, resource_types: list[str] | None = None) -> list[NetworkRequest]:
		requests = list(self.requests.values())
		if resource_types:
			wanted = {t.lower() for t in resource_types}
			requests = [r for r in requests if r.resource_type.lower() in wanted]
		return requests

	def format_requests(self, page_size: int = 50, page_idx: int = 0, resource_types: list[str] | None = None) -> str:
		requests = self.list_requests(resource_types)
		if not requests:
			return 'No network requests captured.'
		start = max(0, page_idx) * page_size
		page = requests[start : start + page_size]
		if not page:
			return f'No network requests on page {page_idx} ({len(requests)} total).'
		header = f'Network requests {start + 1}-{start + len(page)} of {len(requests)}:'
		return '\n'.join([header] + [f'{start + i}: {r.format()}' for i, r in enumerate(page)])
