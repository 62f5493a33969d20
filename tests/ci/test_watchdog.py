import asyncio

import pytest

from browser_control.browser.views import NonRetryableError, StaleUidError, WatchdogTimeoutError
from browser_control.control.state import AutomationStateStore
from browser_control.control.watchdog import ExecutionWatchdog, calculate_backoff, classify_error


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
	"""Record backoff sleeps instead of waiting them out."""
	recorded: list[float] = []
	real_sleep = asyncio.sleep

	async def fake_sleep(delay, *args, **kwargs):
		recorded.append(delay)
		await real_sleep(0)

	monkeypatch.setattr('browser_control.control.watchdog.asyncio.sleep', fake_sleep)
	return recorded


class TestClassification:
	def test_watchdog_timeout_is_always_retryable(self):
		error = WatchdogTimeoutError('completely unrelated words')
		classification = classify_error(error)
		assert classification.type == 'timeout'
		assert classification.retryable is True

	def test_non_retryable_wins_over_keywords(self):
		classification = classify_error(NonRetryableError('network timeout'))
		assert classification.type == 'non_retryable'
		assert classification.retryable is False
		assert classify_error(StaleUidError('Node with uid 1_1 not found in snapshot')).retryable is False

	@pytest.mark.parametrize(
		'message,expected',
		[
			('Connection reset by peer', 'network'),
			('Execution context was detached', 'stale_context'),
			('Click intercepted by overlay', 'element_interaction'),
			('Element not visible', 'retryable'),
			('Page load aborted', 'retryable'),
			('Something odd happened', 'non_retryable'),
		],
	)
	def test_message_classification(self, message, expected):
		assert classify_error(RuntimeError(message)).type == expected

	def test_backoff_doubles(self):
		assert [calculate_backoff(0.5, attempt) for attempt in (1, 2, 3)] == [0.5, 1.0, 2.0]


class TestRunWithWatchdog:
	async def test_always_failing_action_is_attempted_retries_plus_one_times(self, sleeps):
		watchdog = ExecutionWatchdog(heartbeat_interval=0)
		attempts = 0

		async def action():
			nonlocal attempts
			attempts += 1
			raise RuntimeError('network unreachable')

		with pytest.raises(RuntimeError) as exc_info:
			await watchdog.run_with_watchdog('click', action, timeout=1, retries=3, backoff_base=0.5)

		assert attempts == 4
		assert sleeps == [0.5, 1.0, 2.0]
		assert exc_info.value.metadata['attempt'] == 4
		assert exc_info.value.metadata['classification'] == {'type': 'network', 'retryable': True}

	async def test_action_succeeding_on_nth_attempt_runs_n_times(self, sleeps):
		watchdog = ExecutionWatchdog(heartbeat_interval=0)
		attempts = 0

		async def action():
			nonlocal attempts
			attempts += 1
			if attempts < 3:
				raise RuntimeError('element not found')
			return 'done'

		result = await watchdog.run_with_watchdog('click', action, timeout=1, retries=5)

		assert result == 'done'
		assert attempts == 3
		assert len(sleeps) == 2

	async def test_non_retryable_error_fails_immediately(self, sleeps):
		watchdog = ExecutionWatchdog(heartbeat_interval=0)
		on_error_calls = []

		async def action():
			raise NonRetryableError('bad parameters')

		async def on_error(error, classification):
			on_error_calls.append(classification)

		with pytest.raises(NonRetryableError):
			await watchdog.run_with_watchdog('fill', action, timeout=1, retries=3, on_error=on_error)

		assert on_error_calls == []
		assert sleeps == []

	async def test_timeout_raises_watchdog_timeout_and_retries(self, sleeps):
		watchdog = ExecutionWatchdog(heartbeat_interval=0)
		started = 0

		async def slow():
			nonlocal started
			started += 1
			await asyncio.wait_for(asyncio.Event().wait(), 0.5)

		with pytest.raises(WatchdogTimeoutError) as exc_info:
			await watchdog.run_with_watchdog('wait_for', slow, timeout=0.05, retries=1)

		assert started == 2
		assert 'timed out after 0.05s' in str(exc_info.value)
		assert exc_info.value.metadata['classification']['type'] == 'timeout'

	async def test_on_error_runs_before_each_retry(self, sleeps):
		watchdog = ExecutionWatchdog(heartbeat_interval=0)
		seen = []

		async def action():
			raise RuntimeError('navigation failed')

		async def on_error(error, classification):
			seen.append((str(error), classification.type))

		with pytest.raises(RuntimeError):
			await watchdog.run_with_watchdog('navigate_page', action, timeout=1, retries=2, on_error=on_error)

		assert seen == [('navigation failed', 'retryable'), ('navigation failed', 'retryable')]

	async def test_progress_stages_and_heartbeat(self):
		stages = []
		watchdog = ExecutionWatchdog(heartbeat_interval=0.01, progress_callback=lambda stage, payload: stages.append(stage))

		async def action():
			await asyncio.sleep(0.05)
			return 42

		assert await watchdog.run_with_watchdog('take_snapshot', action, timeout=1) == 42
		assert stages[0] == 'start'
		assert 'heartbeat' in stages
		assert stages[-1] == 'success'

		# the heartbeat stops with the action
		count = len(stages)
		await asyncio.sleep(0.05)
		assert len(stages) == count

	async def test_progress_callback_failure_does_not_fail_action(self):
		def broken(stage, payload):
			raise RuntimeError('ui gone')

		watchdog = ExecutionWatchdog(heartbeat_interval=0, progress_callback=broken)

		async def action():
			return 'ok'

		assert await watchdog.run_with_watchdog('hover', action, timeout=1) == 'ok'

	async def test_records_events_in_state_store(self, sleeps):
		store = AutomationStateStore()
		watchdog = ExecutionWatchdog(heartbeat_interval=0, state_store=store)
		attempts = 0

		async def action():
			nonlocal attempts
			attempts += 1
			if attempts == 1:
				raise RuntimeError('timeout while loading')
			return 'ok'

		await watchdog.run_with_watchdog('click', action, timeout=1, retries=1)

		types = [event['type'] for event in store.get_all_events()]
		assert types == ['action_start', 'action_error', 'action_retry', 'action_start', 'action_success']
		error_event = store.get_all_events()[1]
		assert error_event['error'] == 'timeout while loading'
		assert error_event['actionName'] == 'click'
