"""
DOM package.

Accessibility-tree snapshots with stable element UIDs.
"""

from .service import SnapshotManager, hash_ax_tree
from .views import NO_ROOT_SENTINEL, SnapshotCacheStats

__all__ = ['NO_ROOT_SENTINEL', 'SnapshotCacheStats', 'SnapshotManager', 'hash_ax_tree']
