import pytest

from browser_control.actions.service import ActionExecutor
from browser_control.browser.views import BrowserError


@pytest.fixture
def navigation(fake_cdp, connection, wait):
	fake_cdp.add_page('target-2', 'https://docs.example.com/', 'Docs')
	return ActionExecutor(connection, wait=wait).navigation


class TestNavigatePage:
	async def test_url_navigates_attached_session(self, fake_cdp, navigation):
		result = await navigation.navigate_page(url='https://example.com/login')

		assert result == 'Navigating to https://example.com/login'
		assert ('Page.navigate', {'url': 'https://example.com/login'}, 'session-target-1') in fake_cdp.calls

	async def test_back_uses_history_entry(self, fake_cdp, navigation):
		fake_cdp.respond('Page.getNavigationHistory', {'currentIndex': 1, 'entries': [{'id': 7}, {'id': 8}]})

		assert await navigation.navigate_page(type='back') == 'Navigated back'
		assert fake_cdp.calls_to('Page.navigateToHistoryEntry') == [{'entryId': 7}]

	async def test_back_at_first_entry_is_an_error(self, fake_cdp, navigation):
		fake_cdp.respond('Page.getNavigationHistory', {'currentIndex': 0, 'entries': [{'id': 7}, {'id': 8}]})

		assert await navigation.navigate_page(type='back') == 'Error: Cannot navigate back, no earlier page in history.'
		assert fake_cdp.calls_to('Page.navigateToHistoryEntry') == []

	async def test_forward_at_last_entry_is_an_error(self, fake_cdp, navigation):
		fake_cdp.respond('Page.getNavigationHistory', {'currentIndex': 1, 'entries': [{'id': 7}, {'id': 8}]})

		assert await navigation.navigate_page(type='forward') == 'Error: Cannot navigate forward, no later page in history.'
		assert fake_cdp.calls_to('Page.navigateToHistoryEntry') == []

	async def test_forward_uses_next_entry(self, fake_cdp, navigation):
		fake_cdp.respond('Page.getNavigationHistory', {'currentIndex': 0, 'entries': [{'id': 7}, {'id': 8}]})

		assert await navigation.navigate_page(type='forward') == 'Navigated forward'
		assert fake_cdp.calls_to('Page.navigateToHistoryEntry') == [{'entryId': 8}]

	async def test_reload(self, fake_cdp, navigation):
		assert await navigation.navigate_page(type='reload') == 'Reloaded page'
		assert fake_cdp.calls_to('Page.reload') == [{}]

	async def test_missing_arguments(self, navigation):
		assert await navigation.navigate_page() == 'Error: Invalid navigation arguments.'

	async def test_failed_navigation_raises(self, fake_cdp, navigation):
		fake_cdp.respond('Page.navigate', {'errorText': 'net::ERR_NAME_NOT_RESOLVED'})

		with pytest.raises(BrowserError, match='ERR_NAME_NOT_RESOLVED'):
			await navigation.navigate_page(url='https://nowhere.invalid/')

	async def test_without_any_target(self, make_connection):
		manager = make_connection()
		await manager.start()

		navigation = ActionExecutor(manager).navigation

		assert await navigation.navigate_page(url='https://example.com/') == 'Error: No target tab identified.'


class TestPages:
	async def test_list_pages(self, navigation):
		assert await navigation.list_pages() == '0: Example (https://example.com/)\n1: Docs (https://docs.example.com/)'

	async def test_new_page_defaults_to_blank(self, fake_cdp, navigation):
		fake_cdp.respond('Target.createTarget', {'targetId': 'target-9'})

		assert await navigation.new_page() == 'Created new page (id: target-9) loading about:blank'
		assert fake_cdp.calls_to('Target.createTarget') == [{'url': 'about:blank'}]

	async def test_close_page(self, fake_cdp, navigation):
		assert await navigation.close_page(1) == 'Closed page 1: Docs'
		assert fake_cdp.calls_to('Target.closeTarget') == [{'targetId': 'target-2'}]

	async def test_close_page_bad_index(self, navigation):
		assert await navigation.close_page(None) == "Error: 'index' is required."
		assert await navigation.close_page(9) == 'Error: Page index 9 not found.'

	async def test_select_page_does_not_touch_stack(self, connection, navigation):
		assert await navigation.select_page(1) == 'Switched to page 1: Docs'
		assert connection.current_target_id == 'target-2'
		assert connection.tab_stack == []

	async def test_select_page_bad_index(self, navigation):
		assert await navigation.select_page(5) == 'Error: Index 5 not found.'


class TestTabStackTools:
	async def test_switch_and_return(self, fake_cdp, connection, navigation):
		assert await navigation.switch_to_tab('target-2') == 'Switched to tab target-2: Docs'
		assert await navigation.get_tab_stack() == 'Tab stack (1 tabs):\n  target-1: Example'

		assert await navigation.return_to_previous_tab() == 'Returned to previous tab: Example'
		assert connection.current_target_id == 'target-1'
		assert fake_cdp.calls_to('Target.activateTarget')[-1] == {'targetId': 'target-1'}

	async def test_switch_without_push(self, connection, navigation):
		await navigation.switch_to_tab('target-2', push_to_stack=False)

		assert connection.tab_stack == []
		assert await navigation.get_tab_stack() == 'Tab stack is empty'
		assert await navigation.return_to_previous_tab() == 'No previous tab in stack to return to'

	async def test_switch_failure_is_reported_as_text(self, fake_cdp, navigation):
		fake_cdp.respond('Target.getTargets', RuntimeError('browser gone'))

		assert await navigation.switch_to_tab('target-2') == 'Error switching to tab target-2: browser gone'

	async def test_stack_marks_closed_tabs(self, fake_cdp, navigation):
		await navigation.switch_to_tab('target-2')
		fake_cdp.targets = [t for t in fake_cdp.targets if t['targetId'] != 'target-1']

		assert await navigation.get_tab_stack() == 'Tab stack (1 tabs):\n  target-1: (Tab no longer exists)'

	async def test_clear_tab_stack(self, connection, navigation):
		await navigation.switch_to_tab('target-2')

		assert await navigation.clear_tab_stack() == 'Tab stack cleared'
		assert connection.tab_stack == []
