"""
threadsync - keep a local data directory in sync with a git remote.

Commits every local change, batches bursts behind a debounce countdown and
replicates with pull-rebase-push, exposing progress as an observable phase.
"""

__version__ = "0.3.0"

# Re-export the main entry points for convenience
from threadsync.core.config.models import SyncConfig
from threadsync.core.sync.engine import SyncEngine
from threadsync.core.sync.models import SyncPhase, SyncStatus

__all__ = ["SyncConfig", "SyncEngine", "SyncPhase", "SyncStatus", "__version__"]
