"""
Durable automation state: task context, snapshot hash, checkpoints and an event history.

Every mutator persists the whole state through a StateStorage backend. Appending an
event on its own does not persist; the next mutator carries it along.
"""

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from browser_control.config import CONFIG
from browser_control.control.storage import MemoryStateStorage, StateStorage
from browser_control.utils import rolling_hash32, to_base36

logger = logging.getLogger(__name__)


class CheckpointNotFoundError(KeyError):
	"""No checkpoint was saved under the requested label"""

	def __init__(self, label: str):
		super().__init__(label)
		self.label = label

	def __str__(self) -> str:
		return f'Checkpoint not found: {self.label}'


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckpointRecord(_CamelModel):
	"""Copy of the task context at a labelled point. Extra payload fields are kept as given."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='allow')

	label: str
	task_id: str | None = None
	session_id: str | None = None
	last_action: dict[str, Any] | None = None
	snapshot_hash: str | None = None
	dom_version: int = 0
	todo_queue: list[Any] = Field(default_factory=list)
	timestamp: float = Field(default_factory=time.time)


class AutomationState(_CamelModel):
	task_id: str | None = None
	session_id: str | None = None
	last_action: dict[str, Any] | None = None
	last_snapshot: str | None = None
	snapshot_hash: str | None = None
	dom_version: int = 0
	todo_queue: list[Any] = Field(default_factory=list)
	events: list[dict[str, Any]] = Field(default_factory=list)
	checkpoints: dict[str, CheckpointRecord] = Field(default_factory=dict)
	needs_recovery: bool = False
	user_intervention: bool = False


def hash_snapshot(snapshot: Any) -> str | None:
	"""Equality-only fingerprint of a snapshot (text or JSON-able object)."""
	if not snapshot:
		return None
	text = snapshot if isinstance(snapshot, str) else json.dumps(snapshot, separators=(',', ':'))
	return to_base36(rolling_hash32(text))


class AutomationStateStore:
	def __init__(
		self,
		storage: StateStorage | None = None,
		storage_key: str | None = None,
		max_events: int | None = None,
	):
		self.storage = storage if storage is not None else MemoryStateStorage()
		self.storage_key = storage_key or CONFIG.BROWSER_CONTROL_STATE_KEY
		self.max_events = max_events or CONFIG.BROWSER_CONTROL_MAX_EVENTS
		self.state = AutomationState()

	hash_snapshot = staticmethod(hash_snapshot)

	async def load(self) -> bool:
		"""Replace the in-memory state with the persisted one, if any."""
		try:
			data = await self.storage.load(self.storage_key)
		except Exception as e:
			logger.warning(f'⚠️ Failed to load automation state: {type(e).__name__}: {e}')
			return False
		if not data:
			return False

		try:
			self.state = AutomationState.model_validate(data)
		except Exception as e:
			logger.warning(f'⚠️ Persisted automation state is invalid, starting fresh: {e}')
			return False
		logger.debug(f'💾 Automation state loaded ({len(self.state.events)} events, {len(self.state.checkpoints)} checkpoints)')
		return True

	def get_current_context(self) -> dict[str, Any]:
		state = self.state
		return {
			'taskId': state.task_id,
			'sessionId': state.session_id,
			'lastAction': state.last_action,
			'snapshotHash': state.snapshot_hash,
			'domVersion': state.dom_version,
			'todoQueue': list(state.todo_queue),
			'needsRecovery': state.needs_recovery,
			'userIntervention': state.user_intervention,
		}

	# --- Mutators ---

	async def init_task(self, task_id: str, session_id: str | None = None) -> None:
		state = self.state
		state.task_id = task_id
		state.session_id = session_id
		state.last_action = None
		state.dom_version = 0
		state.todo_queue = []
		state.needs_recovery = False
		state.user_intervention = False

		self.append_event({'type': 'task_init', 'taskId': task_id, 'sessionId': session_id})
		await self._persist_state()

	async def update_last_action(self, action: dict[str, Any]) -> None:
		self.state.last_action = {'name': action.get('name'), 'args': action.get('args'), 'timestamp': time.time()}
		self.append_event({'type': 'action_update', 'action': self.state.last_action})
		await self._persist_state()

	async def update_snapshot(self, snapshot: str | None, snapshot_hash: str | None) -> None:
		self.state.last_snapshot = snapshot
		self.state.snapshot_hash = snapshot_hash
		self.state.dom_version += 1
		self.append_event({'type': 'snapshot_update', 'hash': snapshot_hash, 'domVersion': self.state.dom_version})
		await self._persist_state()

	async def save_checkpoint(self, label: str, payload: dict[str, Any] | None = None) -> CheckpointRecord:
		"""Store the current context under `label`, replacing any previous checkpoint with that label."""
		state = self.state
		checkpoint = CheckpointRecord.model_validate(
			{
				'label': label,
				'taskId': state.task_id,
				'sessionId': state.session_id,
				'lastAction': state.last_action,
				'snapshotHash': state.snapshot_hash,
				'domVersion': state.dom_version,
				'todoQueue': list(state.todo_queue),
				'timestamp': time.time(),
				**(payload or {}),
			}
		)
		state.checkpoints[label] = checkpoint

		self.append_event({'type': 'checkpoint_save', 'label': label, 'checkpoint': self._dump(checkpoint)})
		await self._persist_state()
		logger.debug(f'📌 Checkpoint saved: {label}')
		return checkpoint

	async def restore_checkpoint(self, label: str) -> CheckpointRecord:
		checkpoint = self.state.checkpoints.get(label)
		if checkpoint is None:
			raise CheckpointNotFoundError(label)

		state = self.state
		state.task_id = checkpoint.task_id
		state.session_id = checkpoint.session_id
		state.last_action = checkpoint.last_action
		state.snapshot_hash = checkpoint.snapshot_hash
		state.dom_version = checkpoint.dom_version
		state.todo_queue = list(checkpoint.todo_queue)

		self.append_event({'type': 'checkpoint_restore', 'label': label, 'checkpoint': self._dump(checkpoint)})
		await self._persist_state()
		logger.info(f'⏪ Checkpoint restored: {label}')
		return checkpoint

	async def mark_user_intervention(self, reason: str = 'user_requested') -> None:
		self.state.user_intervention = True
		self.append_event({'type': 'user_intervention', 'reason': reason})
		await self._persist_state()

	async def clear_user_intervention(self) -> None:
		self.state.user_intervention = False
		await self._persist_state()

	async def mark_needs_recovery(self, reason: str) -> None:
		self.state.needs_recovery = True
		self.append_event({'type': 'needs_recovery', 'reason': reason})
		await self._persist_state()

	async def clear_recovery(self) -> None:
		self.state.needs_recovery = False
		await self._persist_state()

	async def add_todo(self, todo: Any) -> None:
		self.state.todo_queue.append(todo)
		await self._persist_state()

	async def remove_todo(self, index: int) -> None:
		if 0 <= index < len(self.state.todo_queue):
			del self.state.todo_queue[index]
		await self._persist_state()

	async def clear_todos(self) -> None:
		self.state.todo_queue = []
		await self._persist_state()

	def get_todo_queue(self) -> list[Any]:
		return list(self.state.todo_queue)

	async def clear(self) -> None:
		self.state = AutomationState()
		await self._persist_state()
		logger.debug('🧹 Automation state cleared')

	# --- Events ---

	def append_event(self, event: dict[str, Any]) -> dict[str, Any]:
		"""Add to the bounded history, oldest first out. Does not persist."""
		entry = {**event, 'timestamp': event.get('timestamp') or time.time()}
		events = self.state.events
		events.append(entry)
		if len(events) > self.max_events:
			del events[: len(events) - self.max_events]
		return entry

	def get_recent_events(self, count: int = 10) -> list[dict[str, Any]]:
		if count <= 0:
			return []
		return list(self.state.events[-count:])

	def get_all_events(self) -> list[dict[str, Any]]:
		return list(self.state.events)

	# --- Change detection ---

	def has_page_changed(self, new_hash: str | None) -> bool:
		if not self.state.snapshot_hash:
			return False
		return self.state.snapshot_hash != new_hash

	def get_state_change_summary(self, old_snapshot: Any, new_snapshot: Any) -> dict[str, Any]:
		if not old_snapshot or not new_snapshot:
			return {'changed': False}

		old_hash = hash_snapshot(old_snapshot)
		new_hash = hash_snapshot(new_snapshot)
		return {
			'changed': old_hash != new_hash,
			'oldHash': old_hash,
			'newHash': new_hash,
			'oldVersion': self.state.dom_version,
			'newVersion': self.state.dom_version + 1,
		}

	# --- Persistence ---

	@staticmethod
	def _dump(model: BaseModel) -> dict[str, Any]:
		return model.model_dump(by_alias=True, mode='json')

	async def _persist_state(self) -> None:
		try:
			await self.storage.save(self.storage_key, self._dump(self.state))
		except Exception as e:
			logger.warning(f'⚠️ Failed to persist automation state: {type(e).__name__}: {e}')
