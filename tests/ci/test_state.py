import json

import pytest

from browser_control.control.state import AutomationStateStore, CheckpointNotFoundError, hash_snapshot
from browser_control.control.storage import JsonFileStateStorage, MemoryStateStorage


class BrokenStorage:
	async def load(self, key):
		raise OSError('disk on fire')

	async def save(self, key, data):
		raise OSError('disk on fire')


@pytest.fixture
def store() -> AutomationStateStore:
	return AutomationStateStore(storage=MemoryStateStorage(), storage_key='test_state')


class TestCheckpoints:
	async def test_round_trip_restores_context(self, store):
		await store.init_task('task-1', 'session-1')
		await store.update_last_action({'name': 'click', 'args': {'uid': '1_2'}})
		await store.update_snapshot('uid=1_1 RootWebArea', 'abc')
		await store.add_todo('fill the form')
		saved = await store.save_checkpoint('before_click', {'action': 'click', 'args': {'uid': '1_2'}})

		await store.update_last_action({'name': 'navigate_page', 'args': {'url': 'https://example.org'}})
		await store.update_snapshot('uid=2_1 RootWebArea', 'def')
		await store.add_todo('submit')

		restored = await store.restore_checkpoint('before_click')

		context = store.get_current_context()
		assert context['lastAction'] == saved.last_action
		assert context['snapshotHash'] == 'abc'
		assert context['domVersion'] == 1
		assert context['todoQueue'] == ['fill the form']
		assert restored.label == 'before_click'
		# payload fields survive as extras
		assert restored.model_dump(by_alias=True)['action'] == 'click'

	async def test_same_label_overwrites(self, store):
		await store.save_checkpoint('user_pause', {'message': 'first'})
		await store.save_checkpoint('user_pause', {'message': 'second'})

		assert list(store.state.checkpoints) == ['user_pause']
		assert store.state.checkpoints['user_pause'].model_dump()['message'] == 'second'

	async def test_unknown_label_raises_key_error(self, store):
		with pytest.raises(KeyError) as exc_info:
			await store.restore_checkpoint('missing')

		assert isinstance(exc_info.value, CheckpointNotFoundError)
		assert str(exc_info.value) == 'Checkpoint not found: missing'


class TestEvents:
	async def test_mutators_append_typed_events(self, store):
		await store.init_task('task-1')
		await store.update_last_action({'name': 'hover', 'args': {}})
		await store.update_snapshot('doc', 'h1')
		await store.save_checkpoint('cp')
		await store.mark_user_intervention()
		await store.clear_user_intervention()
		await store.mark_needs_recovery('Action hover failed: boom')
		await store.clear_recovery()

		types = [event['type'] for event in store.get_all_events()]
		assert types == ['task_init', 'action_update', 'snapshot_update', 'checkpoint_save', 'user_intervention', 'needs_recovery']
		assert store.get_all_events()[2]['domVersion'] == 1
		assert store.get_all_events()[4]['reason'] == 'user_requested'
		assert all('timestamp' in event for event in store.get_all_events())

	def test_event_ring_drops_oldest(self):
		store = AutomationStateStore(max_events=3)
		for i in range(5):
			store.append_event({'type': 'tick', 'n': i})

		assert [event['n'] for event in store.get_all_events()] == [2, 3, 4]
		assert [event['n'] for event in store.get_recent_events(2)] == [3, 4]
		assert store.get_recent_events(0) == []

	async def test_append_event_does_not_persist(self):
		storage = MemoryStateStorage()
		store = AutomationStateStore(storage=storage, storage_key='k')

		store.append_event({'type': 'tick'})

		assert await storage.load('k') is None


class TestFlagsAndTodos:
	async def test_flags(self, store):
		await store.mark_needs_recovery('broken')
		await store.mark_user_intervention('captcha')
		assert store.get_current_context()['needsRecovery'] is True
		assert store.get_current_context()['userIntervention'] is True

		await store.clear_recovery()
		await store.clear_user_intervention()
		assert store.get_current_context()['needsRecovery'] is False
		assert store.get_current_context()['userIntervention'] is False

	async def test_todo_queue(self, store):
		await store.add_todo('a')
		await store.add_todo('b')
		await store.add_todo('c')
		await store.remove_todo(1)
		await store.remove_todo(10)
		assert store.get_todo_queue() == ['a', 'c']

		await store.clear_todos()
		assert store.get_todo_queue() == []

	async def test_init_task_resets_task_scoped_fields(self, store):
		await store.update_snapshot('doc', 'h')
		await store.add_todo('x')
		await store.mark_needs_recovery('r')

		await store.init_task('task-2', 'session-2')

		context = store.get_current_context()
		assert context['taskId'] == 'task-2'
		assert context['domVersion'] == 0
		assert context['todoQueue'] == []
		assert context['needsRecovery'] is False

	async def test_clear_resets_everything(self, store):
		await store.init_task('t')
		await store.save_checkpoint('cp')

		await store.clear()

		assert store.get_all_events() == []
		assert store.state.checkpoints == {}


class TestChangeDetection:
	def test_hash_is_deterministic_and_none_for_empty(self):
		assert hash_snapshot('uid=1_1 button OK') == hash_snapshot('uid=1_1 button OK')
		assert hash_snapshot('uid=1_1 button OK') != hash_snapshot('uid=1_1 button Cancel')
		assert hash_snapshot('') is None
		assert hash_snapshot(None) is None
		assert hash_snapshot({'a': 1}) == hash_snapshot({'a': 1})

	def test_known_hash_values(self):
		assert hash_snapshot('a') == '2p'
		# 31 * 97 + 98 = 3105
		assert hash_snapshot('ab') == '2e9'

	async def test_has_page_changed(self, store):
		assert store.has_page_changed('anything') is False

		await store.update_snapshot('doc', 'h1')
		assert store.has_page_changed('h1') is False
		assert store.has_page_changed('h2') is True

	async def test_state_change_summary(self, store):
		assert store.get_state_change_summary(None, 'new') == {'changed': False}

		await store.update_snapshot('old', hash_snapshot('old'))
		summary = store.get_state_change_summary('old', 'new')

		assert summary['changed'] is True
		assert summary['oldHash'] == hash_snapshot('old')
		assert summary['newHash'] == hash_snapshot('new')
		assert summary['oldVersion'] == 1
		assert summary['newVersion'] == 2


class TestPersistence:
	async def test_state_round_trips_through_json_file(self, tmp_path):
		storage = JsonFileStateStorage(tmp_path)
		store = AutomationStateStore(storage=storage, storage_key='browser_automation_state')
		await store.init_task('task-1', 'session-1')
		await store.update_snapshot('doc', 'h1')
		await store.save_checkpoint('before_click', {'action': 'click'})

		raw = json.loads((tmp_path / 'browser_automation_state.json').read_text())
		assert raw['taskId'] == 'task-1'
		assert raw['snapshotHash'] == 'h1'
		assert raw['domVersion'] == 1
		assert raw['checkpoints']['before_click']['action'] == 'click'

		reloaded = AutomationStateStore(storage=storage, storage_key='browser_automation_state')
		assert await reloaded.load() is True
		assert reloaded.get_current_context() == store.get_current_context()
		assert (await reloaded.restore_checkpoint('before_click')).snapshot_hash == 'h1'

	async def test_storage_failures_are_swallowed(self):
		store = AutomationStateStore(storage=BrokenStorage())

		assert await store.load() is False
		await store.update_snapshot('doc', 'h1')

		assert store.state.snapshot_hash == 'h1'

	def test_file_key_is_sanitized(self, tmp_path):
		storage = JsonFileStateStorage(tmp_path)
		assert storage.path_for('../etc/passwd').parent == tmp_path
