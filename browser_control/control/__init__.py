"""
Control package.

Supervises tool calls: the execution watchdog, the durable automation state, the
overlay collaborator and the transaction orchestrator that ties them together.
"""

from .overlay import CdpOverlay, ControlOverlay, NullOverlay
from .service import TransactionOrchestrator
from .state import AutomationStateStore, CheckpointNotFoundError, CheckpointRecord
from .storage import JsonFileStateStorage, MemoryStateStorage, StateStorage
from .views import ControlState, InterventionResult
from .watchdog import ExecutionWatchdog, classify_error

__all__ = [
	'AutomationStateStore',
	'CdpOverlay',
	'CheckpointNotFoundError',
	'CheckpointRecord',
	'ControlOverlay',
	'ControlState',
	'ExecutionWatchdog',
	'InterventionResult',
	'JsonFileStateStorage',
	'MemoryStateStorage',
	'NullOverlay',
	'StateStorage',
	'TransactionOrchestrator',
	'classify_error',
]
