"""
Time inference routes.

Thin HTTP layer over TimeInferenceEngine: review queue, committed entries,
policy updates and sync control. Domain errors map to 400/404/503.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.features.time_inference.api.schemas import (
    ApproveRequest,
    AutoSyncResponse,
    CommittedEntryResponse,
    CommittedListResponse,
    PendingEntryResponse,
    PendingListResponse,
    PolicyUpdateRequest,
    SyncResultResponse,
    SyncSettingsUpdateRequest,
)
from app.features.time_inference.errors import (
    CorrectionError,
    PendingEntryNotFoundError,
    PersistenceError,
    PolicyValidationError,
)
from app.features.time_inference.services.engine import TimeInferenceEngine
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/time-inference", tags=["time-inference"])


def get_engine(request: Request) -> TimeInferenceEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Engine not initialized"
        )
    return engine


@router.get("/pending", response_model=PendingListResponse)
async def list_pending_entries(engine: TimeInferenceEngine = Depends(get_engine)):
    """List entries waiting for review."""
    try:
        entries = await engine.get_pending_entries()
    except PersistenceError as e:
        logger.error("Failed to load pending entries", error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return PendingListResponse(
        entries=[PendingEntryResponse.from_entry(entry) for entry in entries],
        total_count=len(entries),
    )


@router.post("/pending/{pending_id}/approve", response_model=CommittedEntryResponse)
async def approve_pending_entry(
    pending_id: str,
    body: ApproveRequest | None = None,
    engine: TimeInferenceEngine = Depends(get_engine),
):
    confirmed = body.confirmed_minutes if body else None
    try:
        entry = await engine.approve_pending(pending_id, confirmed)
    except PendingEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CorrectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceError as e:
        logger.error("Approval failed", pending_id=pending_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return CommittedEntryResponse.from_entry(entry)


@router.post("/pending/{pending_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_pending_entry(pending_id: str, engine: TimeInferenceEngine = Depends(get_engine)):
    try:
        await engine.reject_pending(pending_id)
    except PendingEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PersistenceError as e:
        logger.error("Rejection failed", pending_id=pending_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/entries", response_model=CommittedListResponse)
async def list_committed_entries(engine: TimeInferenceEngine = Depends(get_engine)):
    try:
        entries = await engine.get_committed_entries()
    except PersistenceError as e:
        logger.error("Failed to load committed entries", error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return CommittedListResponse(
        entries=[CommittedEntryResponse.from_entry(entry) for entry in entries],
        total_count=len(entries),
        total_minutes=sum(entry.duration_minutes for entry in entries),
        billable_minutes=sum(entry.duration_minutes for entry in entries if entry.billable),
    )


@router.patch("/policy")
async def update_review_policy(
    body: PolicyUpdateRequest, engine: TimeInferenceEngine = Depends(get_engine)
) -> dict:
    try:
        policy = engine.update_policy(body.model_dump(exclude_unset=True, exclude_none=True))
    except PolicyValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(e), "field": e.field}
        )
    return policy.model_dump()


@router.patch("/sync-settings")
async def update_sync_settings(
    body: SyncSettingsUpdateRequest, engine: TimeInferenceEngine = Depends(get_engine)
) -> dict:
    try:
        sync_settings = engine.update_sync_settings(
            body.model_dump(exclude_unset=True, exclude_none=True)
        )
    except PolicyValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(e), "field": e.field}
        )
    return sync_settings.model_dump(mode="json")


@router.post("/sync", response_model=SyncResultResponse)
async def run_sync_now(engine: TimeInferenceEngine = Depends(get_engine)):
    """Manual "sync now"; shares the per-activity path with the timer."""
    result = await engine.run_sync_once()
    return SyncResultResponse.from_result(result)


@router.post("/auto-sync/start", response_model=AutoSyncResponse)
async def start_auto_sync(engine: TimeInferenceEngine = Depends(get_engine)):
    changed = engine.start_auto_sync()
    return AutoSyncResponse(active=True, changed=changed)


@router.post("/auto-sync/stop", response_model=AutoSyncResponse)
async def stop_auto_sync(engine: TimeInferenceEngine = Depends(get_engine)):
    changed = await engine.stop_auto_sync()
    return AutoSyncResponse(active=False, changed=changed)


@router.get("/status")
async def get_status(engine: TimeInferenceEngine = Depends(get_engine)) -> dict:
    try:
        return await engine.status()
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
