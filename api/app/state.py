import asyncio
import logging
import os

logger = logging.getLogger("bugsort.api")


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------

def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r, fallback to %s", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Out-of-range %s=%r, fallback to %s", name, raw, default)
        return default
    return value


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r, fallback to %s", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Out-of-range %s=%r, fallback to %s", name, raw, default)
        return default
    return value


# ---------------------------------------------------------------------------
# Environment-derived constants
# ---------------------------------------------------------------------------

API_SEMAPHORE_LIMIT = _env_int("API_SEMAPHORE_LIMIT", 5, minimum=1)
DEFAULT_CLASSIFY_CONCURRENCY = _env_int("CLASSIFY_CONCURRENCY", 20, minimum=1)
CLASSIFY_CONCURRENCY_MAX = _env_int("CLASSIFY_CONCURRENCY_MAX", 50, minimum=1)
AI_SEMAPHORE_LIMIT = _env_int("AI_SEMAPHORE_LIMIT", 50, minimum=1)
AI_RETRIES = _env_int("AI_RETRIES", 1, minimum=0)
# 0 disables the per-call timeout.
AI_CALL_TIMEOUT = _env_float("AI_CALL_TIMEOUT", 0.0, minimum=0.0)


def clamp_concurrency(value: int | None) -> int:
    if not value or value < 1:
        return DEFAULT_CLASSIFY_CONCURRENCY
    if value > CLASSIFY_CONCURRENCY_MAX:
        return CLASSIFY_CONCURRENCY_MAX
    return value


# ---------------------------------------------------------------------------
# Refresh global state
# ---------------------------------------------------------------------------

refresh_lock = asyncio.Lock()
refresh_stop = asyncio.Event()
refresh_task: asyncio.Task | None = None
refresh_state = {
    "running": False,
    "task_id": None,
    "project": None,
    "started_at": None,
    "finished_at": None,
    "classified": 0,
    "total": 0,
    "message": None,
    "last_error": None,
    "last_result": None,
}


# ---------------------------------------------------------------------------
# State accessor helpers
# ---------------------------------------------------------------------------

async def _update_refresh_state(**updates: object) -> None:
    async with refresh_lock:
        refresh_state.update(updates)


async def _get_refresh_state() -> dict:
    async with refresh_lock:
        return dict(refresh_state)
