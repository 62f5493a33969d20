import pytest

from browser_control.actions.service import ActionExecutor
from browser_control.browser.views import StaleUidError
from tests.ci.conftest import ax_node


@pytest.fixture(autouse=True)
def no_highlight_delay(monkeypatch):
	monkeypatch.setattr('browser_control.actions.base.HIGHLIGHT_DURATION', 0)


@pytest.fixture
async def executor(fake_cdp, connection, wait) -> ActionExecutor:
	fake_cdp.respond(
		'Accessibility.getFullAXTree',
		{
			'nodes': [
				ax_node('root', 'RootWebArea', 'Login', ['user', 'pass'], backend_id=1),
				ax_node('user', 'textbox', 'Username', backend_id=10),
				ax_node('pass', 'textbox', 'Password', backend_id=11),
			]
		},
	)
	fake_cdp.respond('DOM.resolveNode', lambda params, session_id: {'object': {'objectId': f'obj-{params["backendNodeId"]}'}})
	executor = ActionExecutor(connection, wait=wait)
	await executor.take_snapshot()
	return executor


def _fill_calls(fake_cdp) -> list[tuple[str, str]]:
	return [
		(params['objectId'], params['arguments'][0]['value'])
		for params in fake_cdp.calls_to('Runtime.callFunctionOn')
		if 'nativeSetter' in params['functionDeclaration']
	]


class TestFill:
	async def test_fill_sets_value_through_native_setter(self, fake_cdp, executor):
		result = await executor.fill('1_2', 'alice')

		assert result == 'Filled element 1_2'
		assert _fill_calls(fake_cdp) == [('obj-10', 'alice')]

	async def test_fill_unknown_uid_is_stale(self, executor):
		with pytest.raises(StaleUidError):
			await executor.fill('7_1', 'alice')

	async def test_fill_form_fills_in_order(self, fake_cdp, executor):
		result = await executor.fill_form([{'uid': '1_2', 'value': 'alice'}, {'uid': '1_3', 'value': 's3cret'}])

		assert result == 'Filled element 1_2\nFilled element 1_3'
		assert _fill_calls(fake_cdp) == [('obj-10', 'alice'), ('obj-11', 's3cret')]

	async def test_fill_form_stops_at_first_failure(self, fake_cdp, executor):
		with pytest.raises(StaleUidError):
			await executor.fill_form([{'uid': '4_4', 'value': 'x'}, {'uid': '1_3', 'value': 'y'}])

		assert _fill_calls(fake_cdp) == []

	async def test_fill_form_without_elements(self, executor):
		assert await executor.fill_form([]) == 'No elements to fill.'


class TestPressKey:
	async def test_named_key_sends_full_definition(self, fake_cdp, executor):
		result = await executor.press_key('Enter')

		assert result == 'Pressed key: Enter'
		events = fake_cdp.calls_to('Input.dispatchKeyEvent')
		assert [e['type'] for e in events] == ['keyDown', 'keyUp']
		assert events[0]['windowsVirtualKeyCode'] == 13
		assert events[0]['text'] == '\r'

	async def test_single_character_is_typed(self, fake_cdp, executor):
		assert await executor.press_key('a') == 'Pressed key: a'
		assert fake_cdp.calls_to('Input.dispatchKeyEvent') == [
			{'type': 'keyDown', 'text': 'a', 'key': 'a'},
			{'type': 'keyUp', 'text': 'a', 'key': 'a'},
		]

	async def test_unsupported_key_is_reported_as_text(self, fake_cdp, executor):
		result = await executor.press_key('Hyper')

		assert result == "Error pressing key Hyper: Key 'Hyper' not supported."
		assert fake_cdp.calls_to('Input.dispatchKeyEvent') == []
