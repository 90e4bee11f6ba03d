"""
Time inference feature package.

Turns work activity (emails, meetings, document edits) into time entries:
domain models, the estimation/classification/review pipeline, persistence
ports, activity sources, the sync orchestrator, jobs and the HTTP router all
live here.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as time_inference_router  # noqa: F401
from .services.engine import TimeInferenceEngine, build_engine  # noqa: F401
from .services.sync_service import SyncOrchestrator  # noqa: F401
from .jobs.auto_sync_job import AutoSyncJob  # noqa: F401
from .domain.models import Activity, CommittedEntry, PendingEntry, SyncResult  # noqa: F401
