"""Refresh pipeline for one tracker project.

fetch issues -> reuse fresh decisions -> classify the rest -> persist documents.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .classification.decision import STOPPED_REASON
from .classification.engine import DEFAULT_BATCH_CONCURRENCY, ClassificationEngine, ProgressCallback
from .classification.staleness import split_for_reclassification
from .classification.summary import build_summary
from .models import ClassifiedBugsDocument, ClassifiedIssue, Issue, utc_now
from .storage import BlobStore, classified_bugs_key, read_json, summary_key, write_json

logger = logging.getLogger("bugsort.pipeline")


class IssueTracker(Protocol):
    async def fetch_issues(self, project_key: str) -> List[Issue]:
        ...


@dataclass(frozen=True)
class RefreshResult:
    project: str
    total: int
    classified: int
    cached: int
    last_updated: datetime
    by_method: Dict[str, int] = field(default_factory=dict)
    stopped: int = 0

    def as_dict(self) -> dict:
        return {
            "project": self.project,
            "total": self.total,
            "classified": self.classified,
            "cached": self.cached,
            "by_method": dict(self.by_method),
            "stopped": self.stopped,
            "last_updated": self.last_updated.isoformat(),
        }


def load_previous_decisions(store: BlobStore, project_key: str) -> Dict[str, ClassifiedIssue]:
    data = read_json(store, classified_bugs_key(project_key))
    if not isinstance(data, dict):
        return {}
    previous: Dict[str, ClassifiedIssue] = {}
    for raw in data.get("bugs") or []:
        try:
            bug = ClassifiedIssue.model_validate(raw)
        except ValidationError as exc:
            key = raw.get("key") if isinstance(raw, dict) else None
            logger.warning("Ignoring stored decision for %s: %s", key, exc.errors()[:1])
            continue
        previous[bug.key] = bug
    return previous


async def refresh_project(
    project_key: str,
    tracker: IssueTracker,
    store: BlobStore,
    engine: ClassificationEngine,
    concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    hard: bool = False,
    on_progress: Optional[ProgressCallback] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> RefreshResult:
    issues = await tracker.fetch_issues(project_key)

    previous: Dict[str, ClassifiedIssue] = {}
    if not hard:
        previous = await asyncio.to_thread(load_previous_decisions, store, project_key)
    logger.info("Loaded %s previously classified bugs for %s", len(previous), project_key)

    cached, to_classify = split_for_reclassification(issues, previous)
    logger.info("Cache hit: %s bugs, to classify: %s bugs", len(cached), len(to_classify))

    fresh = await engine.classify_batch(
        to_classify,
        concurrency=concurrency,
        on_progress=on_progress,
        stop_event=stop_event,
    )
    classified_bugs = cached + fresh

    document = ClassifiedBugsDocument(last_updated=utc_now(), bugs=classified_bugs)
    summary = build_summary(classified_bugs)
    await asyncio.to_thread(write_json, store, classified_bugs_key(project_key), document.to_document())
    await asyncio.to_thread(write_json, store, summary_key(project_key), summary.to_document())
    logger.info("Wrote %s classified bugs and summary for %s", len(classified_bugs), project_key)

    return RefreshResult(
        project=project_key,
        total=len(classified_bugs),
        classified=len(fresh),
        cached=len(cached),
        last_updated=document.last_updated,
        by_method=dict(Counter(bug.classification_method for bug in fresh)),
        stopped=sum(1 for bug in fresh if bug.classification_reason == STOPPED_REASON),
    )
