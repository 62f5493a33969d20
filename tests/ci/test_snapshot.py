import pytest

from browser_control.dom.service import SnapshotManager, hash_ax_tree
from browser_control.dom.views import NO_ROOT_SENTINEL
from tests.ci.conftest import ax_node


def _tree(*children: dict, root_children: list[str] | None = None) -> dict:
	root = ax_node('root', 'RootWebArea', 'Test Page', root_children or [c['nodeId'] for c in children], backend_id=1)
	return {'nodes': [root, *children]}


@pytest.fixture
def snapshots(connection) -> SnapshotManager:
	return SnapshotManager(connection)


class TestSnapshotText:
	async def test_prints_interesting_nodes_with_indentation(self, fake_cdp, snapshots):
		fake_cdp.respond(
			'Accessibility.getFullAXTree',
			{
				'nodes': [
					ax_node('root', 'RootWebArea', 'Test Page', ['wrap', 'email'], backend_id=1),
					ax_node('wrap', 'generic', children=['btn'], backend_id=2),
					ax_node('btn', 'button', 'Submit', backend_id=10),
					ax_node('email', 'textbox', 'Email', backend_id=11, properties={'focused': True}),
				]
			},
		)

		text = await snapshots.take_snapshot()

		assert text == (
			'uid=1_1 RootWebArea "Test Page"\n'
			'  uid=1_2 button Submit\n'
			'  uid=1_3 textbox Email focusable focused\n'
		)
		assert snapshots.get_backend_node_id('1_2') == 10
		assert snapshots.get_backend_node_id('9_9') is None

	async def test_verbose_keeps_ignored_and_generic_nodes(self, fake_cdp, snapshots):
		fake_cdp.respond(
			'Accessibility.getFullAXTree',
			{
				'nodes': [
					ax_node('root', 'RootWebArea', 'Page', ['wrap'], backend_id=1),
					ax_node('wrap', 'generic', children=['hidden'], backend_id=2),
					ax_node('hidden', 'button', 'Hidden', backend_id=3, ignored=True),
				]
			},
		)

		text = await snapshots.take_snapshot(verbose=True)

		lines = text.splitlines()
		assert lines[1] == '  uid=1_2 generic'
		assert lines[2] == '    uid=1_3 ignored Hidden'

	async def test_option_without_value_uses_its_name(self, fake_cdp, snapshots):
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('opt', 'option', 'Red', backend_id=5)))

		text = await snapshots.take_snapshot()

		assert 'uid=1_2 option Red value=Red' in text

	async def test_missing_root_returns_sentinel(self, fake_cdp, snapshots):
		# every node is somebody's child
		fake_cdp.respond(
			'Accessibility.getFullAXTree',
			{'nodes': [ax_node('a', 'button', 'A', ['b']), ax_node('b', 'button', 'B', ['a'])]},
		)

		assert await snapshots.take_snapshot() == NO_ROOT_SENTINEL


class TestStableUids:
	async def test_unchanged_element_set_keeps_every_uid(self, fake_cdp, snapshots):
		nodes = [ax_node('a', 'button', 'A', backend_id=100), ax_node('b', 'link', 'B', backend_id=101)]
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(*nodes))
		first = await snapshots.take_snapshot()

		second = await snapshots.take_snapshot(force_refresh=True)

		assert first == second
		assert snapshots.generation == 2

	async def test_reordered_and_extended_children_keep_uids(self, fake_cdp, snapshots):
		a = ax_node('a', 'button', 'A', backend_id=100)
		b = ax_node('b', 'button', 'B', backend_id=101)
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(a, b))
		await snapshots.take_snapshot()
		uid_a = next(uid for uid, backend in snapshots.snapshot_map.items() if backend == 100)
		uid_b = next(uid for uid, backend in snapshots.snapshot_map.items() if backend == 101)

		c = ax_node('c', 'button', 'C', backend_id=102)
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(b, a, c))
		text = await snapshots.take_snapshot()

		assert snapshots.get_backend_node_id(uid_a) == 100
		assert snapshots.get_backend_node_id(uid_b) == 101
		uid_c = next(uid for uid, backend in snapshots.snapshot_map.items() if backend == 102)
		assert uid_c not in (uid_a, uid_b)
		assert uid_c.startswith('2_')
		assert f'uid={uid_c} button C' in text

	async def test_detach_clears_uid_tables(self, fake_cdp, connection, snapshots):
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'button', 'A', backend_id=100)))
		await snapshots.take_snapshot()
		assert snapshots.snapshot_map

		await connection.detach()

		assert snapshots.snapshot_map == {}
		assert snapshots.last_snapshot is None


class TestSnapshotCache:
	async def test_unchanged_tree_is_served_from_cache(self, fake_cdp, snapshots):
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'button', 'A', backend_id=100)))
		first = await snapshots.take_snapshot()

		second = await snapshots.take_snapshot()

		assert second is first
		assert snapshots.cache_stats.hits == 1
		assert snapshots.cache_stats.misses == 1
		assert snapshots.generation == 1

	async def test_changed_state_flag_invalidates_cache(self, fake_cdp, snapshots):
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'checkbox', 'Agree', backend_id=100, properties={'checked': False})))
		first = await snapshots.take_snapshot()

		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'checkbox', 'Agree', backend_id=100, properties={'checked': True})))
		second = await snapshots.take_snapshot()

		assert second != first
		assert 'checkable checked' in second
		assert snapshots.cache_stats.hits == 0
		assert snapshots.cache_stats.misses == 2

	async def test_verbose_request_is_not_served_compact_copy(self, fake_cdp, snapshots):
		fake_cdp.respond(
			'Accessibility.getFullAXTree',
			{
				'nodes': [
					ax_node('root', 'RootWebArea', 'Page', ['wrap'], backend_id=1),
					ax_node('wrap', 'generic', children=['btn'], backend_id=2),
					ax_node('btn', 'button', 'Go', backend_id=3),
				]
			},
		)
		compact = await snapshots.take_snapshot()

		verbose = await snapshots.take_snapshot(verbose=True)

		assert 'generic' not in compact
		assert 'generic' in verbose
		assert snapshots.cache_stats.hits == 0

		assert await snapshots.take_snapshot(verbose=True) is verbose
		assert snapshots.cache_stats.hits == 1

	async def test_force_refresh_bypasses_cache(self, fake_cdp, snapshots):
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'button', 'A', backend_id=100)))
		await snapshots.take_snapshot()

		await snapshots.take_snapshot(force_refresh=True)

		assert snapshots.cache_stats.hits == 0
		assert snapshots.get_cache_stats()['misses'] == 2

	async def test_attach_invalidates_cache(self, fake_cdp, connection, snapshots):
		fake_cdp.add_page('target-2')
		fake_cdp.respond('Accessibility.getFullAXTree', _tree(ax_node('a', 'button', 'A', backend_id=100)))
		await snapshots.take_snapshot()

		await connection.attach('target-2')
		await snapshots.take_snapshot()

		assert snapshots.cache_stats.hits == 0


class TestTreeHash:
	def test_empty_tree(self):
		assert hash_ax_tree([]) == 'empty'
		assert hash_ax_tree(None) == 'empty'

	def test_hash_tracks_name_and_child_count(self):
		base = [ax_node('a', 'button', 'A', ['b']), ax_node('b', 'text', 'x')]
		renamed = [ax_node('a', 'button', 'B', ['b']), ax_node('b', 'text', 'x')]
		childless = [ax_node('a', 'button', 'A'), ax_node('b', 'text', 'x')]

		assert hash_ax_tree(base) == hash_ax_tree([dict(n) for n in base])
		assert hash_ax_tree(base) != hash_ax_tree(renamed)
		assert hash_ax_tree(base) != hash_ax_tree(childless)
