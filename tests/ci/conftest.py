"""
Shared fixtures: a scripted stand-in for cdp_use.CDPClient and helpers for AX trees.

FakeCDPClient records every command and answers from a per-method response table.
A response may be a dict, an exception instance (raised), or a callable taking
`(params, session_id)` and returning either of those.
"""

import asyncio
import inspect
from typing import Any

import pytest

from browser_control.browser.connection import ConnectionManager
from browser_control.browser.wait import WaitCoordinator, WaitTimeouts


class _DomainProxy:
	def __init__(self, client: 'FakeCDPClient', domain: str, registering: bool):
		self._client = client
		self._domain = domain
		self._registering = registering

	def __getattr__(self, name: str):
		method = f'{self._domain}.{name}'
		if self._registering:

			def register(handler):
				self._client.handlers.setdefault(method, []).append(handler)

			return register

		async def send(params: dict[str, Any] | None = None, session_id: str | None = None):
			return await self._client.send_raw(method, params=params, session_id=session_id)

		return send


class _Namespace:
	def __init__(self, client: 'FakeCDPClient', registering: bool):
		self._client = client
		self._registering = registering

	def __getattr__(self, domain: str) -> _DomainProxy:
		return _DomainProxy(self._client, domain, self._registering)


class FakeCDPClient:
	def __init__(self):
		self.calls: list[tuple[str, dict[str, Any], str | None]] = []
		self.responses: dict[str, Any] = {
			'Target.attachToTarget': lambda params, session_id: {'sessionId': f'session-{params["targetId"]}'},
			'Target.getTargets': lambda params, session_id: {'targetInfos': list(self.targets)},
		}
		self.handlers: dict[str, list[Any]] = {}
		self.targets: list[dict[str, Any]] = []
		self.send = _Namespace(self, registering=False)
		self.register = _Namespace(self, registering=True)
		self.started = False

	def add_page(self, target_id: str, url: str = 'https://example.com/', title: str = 'Example') -> None:
		self.targets.append({'targetId': target_id, 'type': 'page', 'url': url, 'title': title, 'attached': False})

	def respond(self, method: str, response: Any) -> None:
		self.responses[method] = response

	async def start(self) -> None:
		self.started = True

	async def stop(self) -> None:
		self.started = False

	async def send_raw(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> Any:
		params = params or {}
		self.calls.append((method, params, session_id))

		response = self.responses.get(method, {})
		if callable(response):
			response = response(params, session_id)
			if inspect.isawaitable(response):
				response = await response
		if isinstance(response, BaseException):
			raise response
		return response

	def emit(self, method: str, params: dict[str, Any], session_id: str | None = None) -> None:
		for handler in list(self.handlers.get(method, [])):
			handler(params, session_id=session_id)

	def emit_soon(self, method: str, params: dict[str, Any], session_id: str | None = None, delay: float = 0.0) -> None:
		asyncio.get_running_loop().call_later(delay, self.emit, method, params, session_id)

	def methods(self) -> list[str]:
		return [method for method, _, _ in self.calls]

	def calls_to(self, method: str) -> list[dict[str, Any]]:
		return [params for name, params, _ in self.calls if name == method]


def ax_node(
	node_id: str,
	role: str,
	name: str = '',
	children: list[str] | None = None,
	backend_id: int | None = None,
	**extra: Any,
) -> dict[str, Any]:
	node: dict[str, Any] = {
		'nodeId': node_id,
		'ignored': extra.pop('ignored', False),
		'role': {'type': 'role', 'value': role},
		'childIds': children or [],
	}
	if name:
		node['name'] = {'type': 'computedString', 'value': name}
	if backend_id is not None:
		node['backendDOMNodeId'] = backend_id
	for key in ('value', 'description'):
		if key in extra:
			node[key] = {'type': 'string', 'value': extra.pop(key)}
	if 'properties' in extra:
		node['properties'] = [{'name': k, 'value': {'type': 'boolean', 'value': v}} for k, v in extra.pop('properties').items()]
	node.update(extra)
	return node


@pytest.fixture
def fake_cdp() -> FakeCDPClient:
	client = FakeCDPClient()
	client.add_page('target-1', 'https://example.com/', 'Example')
	return client


@pytest.fixture
async def make_connection(fake_cdp: FakeCDPClient):
	"""Build unattached managers over `fake_cdp`; every one is closed on teardown."""
	managers: list[ConnectionManager] = []

	def factory() -> ConnectionManager:
		manager = ConnectionManager(fake_cdp)  # type: ignore[arg-type]
		managers.append(manager)
		return manager

	yield factory

	for manager in managers:
		await manager.close()


@pytest.fixture
async def connection(make_connection) -> ConnectionManager:
	manager = make_connection()
	await manager.start()
	await manager.attach('target-1')
	return manager


@pytest.fixture
def fast_timeouts() -> WaitTimeouts:
	return WaitTimeouts(stable_dom=0.05, stable_dom_for=0.01, expect_navigation_in=0.0, navigation=0.5, unattached_grace=0.0)


@pytest.fixture
def wait(connection: ConnectionManager, fast_timeouts: WaitTimeouts) -> WaitCoordinator:
	return WaitCoordinator(connection, fast_timeouts)
