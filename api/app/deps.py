import asyncio
import logging
import os
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Header, HTTPException, Request

from .cache import CACHE_TTL_DOCUMENTS, cache
from .config import get_settings
from .storage import BlobStore, read_json

logger = logging.getLogger("bugsort.api")

_admin_token_warned = False
_PROJECT_KEY_RE = re.compile(r"^[A-Z][A-Z0-9_]{0,63}$")


def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    global _admin_token_warned
    admin_token = os.getenv("ADMIN_TOKEN", "").strip()
    if not admin_token:
        if not _admin_token_warned:
            logger.warning(
                "ADMIN_TOKEN is not set. Admin endpoints are unprotected. "
                "Set ADMIN_TOKEN environment variable for production use."
            )
            _admin_token_warned = True
        return
    if not secrets.compare_digest(x_admin_token or "", admin_token):
        raise HTTPException(status_code=401, detail="Admin token required")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalized_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _normalize_project(value: Optional[str]) -> str:
    project = (_normalized_optional(value) or get_settings().jira_project).upper()
    if not _PROJECT_KEY_RE.fullmatch(project):
        raise HTTPException(status_code=400, detail=f"Invalid project key: {value}")
    return project


def get_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


async def load_document(store: BlobStore, key: str) -> Optional[Any]:
    async def loader() -> Optional[Any]:
        return await asyncio.to_thread(read_json, store, key)

    return await cache.get_or_load(f"doc:{key}", loader, CACHE_TTL_DOCUMENTS)


def _handle_task_exception(task: asyncio.Task) -> None:
    try:
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)
    except asyncio.CancelledError:
        pass
