"""Background workers."""
from .status_sync_worker import start_status_sync_worker, sync_stale_deposits

__all__ = ["start_status_sync_worker", "sync_stale_deposits"]
