"""Sync routes for triggering and monitoring directory sync."""
import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse

from app.directory.progress import ProgressEvent
from app.directory.sync import SyncError, SyncOrchestrator

router = APIRouter(prefix="/sync", tags=["sync"])

ALREADY_RUNNING = {"status": "already_running", "detail": "A sync is already in progress"}


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Dependency returning the orchestrator created at startup."""
    return request.app.state.orchestrator


async def _run_pass(orchestrator: SyncOrchestrator, *, force: bool, include_attendance: bool):
    trigger = orchestrator.force_sync if force else orchestrator.sync
    try:
        result = await run_in_threadpool(trigger, include_attendance=include_attendance)
    except SyncError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if result is None:
        return JSONResponse(status_code=409, content=ALREADY_RUNNING)
    return {"status": "completed", "result": result.as_dict()}


@router.post("/now")
async def trigger_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Manually trigger an incremental sync of events and people.

    Answers 409 immediately if a pass is already running, and 502 with the
    underlying error message if the pass fails.
    """
    return await _run_pass(orchestrator, force=False, include_attendance=False)


@router.post("/attendance")
async def trigger_attendance_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Incremental sync followed by a guest list refresh of tracked events."""
    return await _run_pass(orchestrator, force=False, include_attendance=True)


@router.post("/force")
async def trigger_full_resync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Reset the watermark and re-sync all upstream data, attendance included."""
    return await _run_pass(orchestrator, force=True, include_attendance=True)


@router.delete("/data")
async def clear_synced_data(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Delete all synced events, people and attendance; the next pass reloads them."""
    cleared = await run_in_threadpool(orchestrator.clear_synced_data)
    if not cleared:
        return JSONResponse(status_code=409, content=ALREADY_RUNNING)
    return {"status": "cleared"}


@router.get("/status")
async def sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Get current sync status.

    Used by the admin UI to decide whether to offer a "sync now" button:
    whether a pass is running, when the last successful pass started, and
    the outcome of the most recent pass.
    """
    return await run_in_threadpool(orchestrator.status)


@router.get("/progress")
async def sync_progress(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Stream progress events as Server-Sent Events.

    The stream ends after the next ``complete`` or ``error`` event.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    # Called on the reporter's dispatch thread; hand off to the event loop.
    unsubscribe = orchestrator.reporter.subscribe(
        lambda event: loop.call_soon_threadsafe(queue.put_nowait, event)
    )

    async def stream():
        try:
            while True:
                event = await queue.get()
                yield f"data: {event.model_dump_json()}\n\n"
                if event.is_terminal:
                    break
        finally:
            unsubscribe()

    return StreamingResponse(stream(), media_type="text/event-stream")
