from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfigResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    refresh_enabled: bool
    last_updated: str | None = None


class BugListResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bugs: List[Dict[str, Any]]
    last_updated: str | None = None


class RefreshRequest(BaseModel):
    project: str | None = None
    hard: bool = False
    concurrency: int | None = Field(default=None, ge=1)


class RefreshQueuedResponse(BaseModel):
    task_id: str
    status: str
    project: str
    message: str | None = None


class RefreshStatusResponse(BaseModel):
    running: bool
    task_id: str | None = None
    project: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    classified: int = 0
    total: int = 0
    message: str | None = None
    last_error: str | None = None
    last_result: Dict[str, Any] | None = None
