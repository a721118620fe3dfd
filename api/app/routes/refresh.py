import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..cache import cache
from ..config import get_settings
from ..deps import _handle_task_exception, _normalize_project, _now_iso, require_admin
from ..pipeline import refresh_project
from ..rate_limit import RATE_LIMIT_ADMIN, RATE_LIMIT_HEAVY, limiter
from ..schemas import RefreshQueuedResponse, RefreshRequest, RefreshStatusResponse
from ..state import (
    _get_refresh_state,
    _update_refresh_state,
    clamp_concurrency,
    refresh_lock,
    refresh_state,
    refresh_stop,
)

logger = logging.getLogger("bugsort.api")

router = APIRouter(prefix="/api")


async def _start_background_refresh(
    app,
    project: str,
    hard: bool,
    concurrency: int,
    task_id: str,
) -> bool:
    import api.app.state as _state
    async with refresh_lock:
        if refresh_state["running"]:
            return False
        refresh_stop.clear()
        refresh_state.update(
            running=True,
            task_id=task_id,
            project=project,
            started_at=_now_iso(),
            finished_at=None,
            classified=0,
            total=0,
            message="Refresh queued",
            last_error=None,
        )
        _state.refresh_task = asyncio.create_task(
            _background_refresh(app, project, hard, concurrency, task_id)
        )
        _state.refresh_task.add_done_callback(_handle_task_exception)
    return True


async def _background_refresh(
    app,
    project: str,
    hard: bool,
    concurrency: int,
    task_id: str,
) -> None:
    async def on_progress(done: int, total: int, message: str) -> None:
        await _update_refresh_state(classified=done, total=total, message=message)

    logger.info("Refresh %s started for %s (hard=%s, concurrency=%s)", task_id, project, hard, concurrency)
    try:
        result = await refresh_project(
            project,
            app.state.jira_client,
            app.state.blob_store,
            app.state.engine,
            concurrency=concurrency,
            hard=hard,
            on_progress=on_progress,
            stop_event=refresh_stop,
        )
    except Exception as exc:
        logger.error("Refresh %s failed for %s: %s", task_id, project, exc)
        await _update_refresh_state(
            running=False,
            finished_at=_now_iso(),
            message="Refresh failed",
            last_error=str(exc),
        )
        return

    await cache.invalidate_prefix(f"doc:{project}/")
    stopped = result.stopped > 0
    await _update_refresh_state(
        running=False,
        finished_at=_now_iso(),
        message="Refresh stopped" if stopped else f"Refreshed {result.total} bugs",
        last_error="Stopped by user" if stopped else None,
        last_result=result.as_dict(),
    )
    logger.info("Refresh %s finished for %s: %s", task_id, project, result.as_dict())


@router.post("/refresh", dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_HEAVY)
async def refresh(request: Request, payload: RefreshRequest | None = None) -> JSONResponse:
    payload = payload or RefreshRequest()
    if not get_settings().jira_token:
        raise HTTPException(status_code=400, detail="JIRA_TOKEN is not configured")
    project = _normalize_project(payload.project)
    concurrency = clamp_concurrency(payload.concurrency)
    task_id = str(uuid.uuid4())
    started = await _start_background_refresh(request.app, project, payload.hard, concurrency, task_id)
    if not started:
        raise HTTPException(status_code=409, detail="Refresh already running")
    response = RefreshQueuedResponse(
        task_id=task_id,
        status="queued",
        project=project,
        message="Refresh queued",
    )
    return JSONResponse(status_code=202, content=response.model_dump())


@router.get("/refresh/status", response_model=RefreshStatusResponse)
async def refresh_status() -> RefreshStatusResponse:
    state = await _get_refresh_state()
    if not state.get("running"):
        state["task_id"] = None
    return RefreshStatusResponse(**state)


@router.post("/refresh/stop", dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_ADMIN)
async def refresh_stop_endpoint(request: Request) -> dict:
    refresh_stop.set()
    await _update_refresh_state(message="Stop requested")
    return {"stopped": True}
