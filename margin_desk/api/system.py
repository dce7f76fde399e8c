"""System API - health check, scheduler status, manual mark cycle."""

from fastapi import APIRouter, Depends

from margin_desk.api.deps import get_current_user_id, require_feed

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(get_current_user_id)])
def scheduler_status():
    """Current scheduler state with job details."""
    from margin_desk.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/mark", dependencies=[Depends(require_feed)])
async def trigger_mark_cycle():
    """Run one mark-to-market sweep now."""
    from margin_desk.engine.monitor import run_mark_cycle
    return await run_mark_cycle()
