import logging
import time
from typing import TYPE_CHECKING, Any

from browser_control.dom.accessibility.filter import ax_value, property_map
from browser_control.dom.serializer import AXTreeSerializer
from browser_control.dom.views import ESTIMATED_GENERATION_SECONDS, NO_ROOT_SENTINEL, SnapshotCacheStats
from browser_control.utils import djb2_hex, time_execution_async

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)


def hash_ax_tree(nodes: list[dict[str, Any]] | None) -> str:
	"""Content hash over the fields that change what a snapshot prints.

	Covers node id, role, name, child count, value and the disabled/checked/selected
	flags. Returns 'empty' for an empty tree.
	"""
	if not nodes:
		return 'empty'

	parts = []
	for node in nodes:
		props = property_map(node)
		parts.append(
			':'.join(
				(
					str(node.get('nodeId')),
					str(ax_value(node.get('role')) or ''),
					str(ax_value(node.get('name')) or ''),
					str(len(node.get('childIds') or [])),
					str(ax_value(node.get('value')) or ''),
					'1' if props.get('disabled') else '0',
					'1' if props.get('checked') else '0',
					'1' if props.get('selected') else '0',
				)
			)
		)
	return djb2_hex('|'.join(parts))


class SnapshotManager:
	"""
	Builds accessibility-tree snapshots and owns the UID tables.

	UIDs are `<generation>_<counter>`. Once minted, a UID stays bound to its element's
	stable key (`frameId:backendDOMNodeId`) until the connection detaches, so an unchanged
	element keeps its UID across snapshots. The last document is cached by a hash of the
	raw tree; attaching or detaching invalidates the cache.
	"""

	def __init__(self, connection: 'ConnectionManager'):
		self.connection = connection

		# uid -> backendDOMNodeId for the latest snapshot
		self.snapshot_map: dict[str, int] = {}
		self.generation = 0

		self._uid_by_key: dict[str, str] = {}
		self._key_by_uid: dict[str, str] = {}

		self._cached_snapshot: str | None = None
		self._cached_hash: str | None = None
		self._cached_verbose = False
		self.cache_stats = SnapshotCacheStats()

		connection.on_detach(self.clear)
		connection.on_attach(self.clear_cache)

	def clear(self) -> None:
		self.snapshot_map.clear()
		self.clear_cache()
		self._uid_by_key.clear()
		self._key_by_uid.clear()

	def clear_cache(self) -> None:
		self._cached_snapshot = None
		self._cached_hash = None

	def get_backend_node_id(self, uid: str) -> int | None:
		return self.snapshot_map.get(uid)

	def get_cache_stats(self) -> dict[str, float | int | str]:
		return self.cache_stats.to_dict()

	@property
	def last_snapshot(self) -> str | None:
		return self._cached_snapshot

	@time_execution_async('--take_snapshot')
	async def take_snapshot(self, verbose: bool = False, force_refresh: bool = False) -> str:
		start_time = time.time()

		await self.connection.call('DOM.enable')
		await self.connection.call('Accessibility.enable')
		result = await self.connection.call('Accessibility.getFullAXTree')
		nodes = result.get('nodes', [])

		if not force_refresh and self._cached_snapshot is not None and self._cached_hash and self._cached_verbose == verbose:
			if hash_ax_tree(nodes) == self._cached_hash:
				self.cache_stats.hits += 1
				self.cache_stats.total_saved += ESTIMATED_GENERATION_SECONDS - (time.time() - start_time)
				logger.debug(f'📸 Snapshot cache HIT ({self.cache_stats.hits} hits, saved ~{self.cache_stats.total_saved:.2f}s)')
				return self._cached_snapshot

		self.cache_stats.misses += 1
		self.generation += 1
		generation = self.generation
		counter = 0
		self.snapshot_map.clear()

		def uid_for(node: dict[str, Any]) -> str:
			nonlocal counter
			backend_id = node.get('backendDOMNodeId')
			stable_key = f'{node.get("frameId") or ""}:{backend_id}' if backend_id else None

			if stable_key and stable_key in self._uid_by_key:
				uid = self._uid_by_key[stable_key]
			else:
				counter += 1
				uid = f'{generation}_{counter}'
				if stable_key:
					self._uid_by_key[stable_key] = uid
					self._key_by_uid[uid] = stable_key

			if backend_id:
				self.snapshot_map[uid] = backend_id
			return uid

		serializer = AXTreeSerializer(nodes, uid_for, verbose=verbose)
		text = serializer.serialize()
		if text is None:
			logger.warning('⚠️ Accessibility tree has no root node')
			return NO_ROOT_SENTINEL

		self._cached_snapshot = text
		self._cached_hash = hash_ax_tree(nodes)
		self._cached_verbose = verbose

		stats = serializer.stats
		logger.debug(
			f'📸 Snapshot generation {generation}: {stats.printed_nodes}/{stats.total_nodes} nodes printed '
			f'in {time.time() - start_time:.3f}s'
		)
		return text
