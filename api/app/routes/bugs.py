from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..config import get_settings
from ..deps import _normalize_project, _normalized_optional, get_store, load_document
from ..models import parse_timestamp
from ..rate_limit import RATE_LIMIT_DEFAULT, limiter
from ..schemas import BugListResponse, ConfigResponse
from ..storage import BlobStore, classified_bugs_key, summary_key

router = APIRouter(prefix="/api")


def _parse_filter_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}") from exc


def _created_at(bug: Dict[str, Any]) -> Optional[datetime]:
    try:
        return parse_timestamp(bug.get("created"))
    except ValueError:
        return None


def filter_bugs(
    bugs: List[Dict[str, Any]],
    classification: Optional[str] = None,
    priority: Optional[str] = None,
    team: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    selected = bugs
    if classification:
        selected = [b for b in selected if b.get("classification") == classification]
    if priority:
        selected = [b for b in selected if b.get("priority") == priority]
    if team:
        selected = [b for b in selected if b.get("team") == team]
    if date_from or date_to:
        dated = [(b, _created_at(b)) for b in selected]
        selected = [
            b
            for b, created in dated
            if created is not None
            and (date_from is None or created >= date_from)
            and (date_to is None or created <= date_to)
        ]
    return selected


async def _require_document(store: BlobStore, key: str, project: str) -> Dict[str, Any]:
    data = await load_document(store, key)
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=404,
            detail=f"No data found for project {project}. Run a refresh to fetch data from Jira.",
        )
    return data


@router.get("/config", response_model=ConfigResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def config(
    request: Request,
    project: Optional[str] = None,
    store: BlobStore = Depends(get_store),
) -> ConfigResponse:
    project_key = _normalize_project(project)
    data = await load_document(store, classified_bugs_key(project_key))
    last_updated = data.get("lastUpdated") if isinstance(data, dict) else None
    return ConfigResponse(refresh_enabled=bool(get_settings().jira_token), last_updated=last_updated)


@router.get("/bugs", response_model=BugListResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def list_bugs(
    request: Request,
    project: Optional[str] = None,
    classification: Optional[str] = None,
    priority: Optional[str] = None,
    team: Optional[str] = None,
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
    store: BlobStore = Depends(get_store),
) -> BugListResponse:
    project_key = _normalize_project(project)
    data = await _require_document(store, classified_bugs_key(project_key), project_key)
    bugs = filter_bugs(
        data.get("bugs") or [],
        classification=_normalized_optional(classification),
        priority=_normalized_optional(priority),
        team=_normalized_optional(team),
        date_from=_parse_filter_date(date_from, "dateFrom"),
        date_to=_parse_filter_date(date_to, "dateTo"),
    )
    return BugListResponse(bugs=bugs, last_updated=data.get("lastUpdated"))


@router.get("/bugs/{key}")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def get_bug(
    request: Request,
    key: str,
    project: Optional[str] = None,
    store: BlobStore = Depends(get_store),
) -> Dict[str, Any]:
    project_key = _normalize_project(project)
    data = await _require_document(store, classified_bugs_key(project_key), project_key)
    for bug in data.get("bugs") or []:
        if bug.get("key") == key:
            return bug
    raise HTTPException(status_code=404, detail=f"Bug {key} not found")


@router.get("/summary")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def summary(
    request: Request,
    project: Optional[str] = None,
    store: BlobStore = Depends(get_store),
) -> Dict[str, Any]:
    project_key = _normalize_project(project)
    return await _require_document(store, summary_key(project_key), project_key)
