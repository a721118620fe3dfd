#!/usr/bin/env python3
"""Fetch, classify and store bugs for one Jira project without the API server."""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx

from api.app.ai_client import build_ai_client
from api.app.classification.engine import ClassificationEngine
from api.app.config import get_settings
from api.app.errors import BugSortError
from api.app.jira import JiraClient
from api.app.pipeline import RefreshResult, refresh_project
from api.app.state import (
    AI_CALL_TIMEOUT,
    AI_RETRIES,
    AI_SEMAPHORE_LIMIT,
    API_SEMAPHORE_LIMIT,
    clamp_concurrency,
)
from api.app.storage import build_blob_store

logger = logging.getLogger("bugsort.cli")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Refresh classified bug data for a Jira project")
    parser.add_argument("--project", default=settings.jira_project, help="Jira project key")
    parser.add_argument(
        "--hard",
        action="store_true",
        help="Ignore stored decisions and reclassify every bug",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Concurrent LLM calls per wave",
    )
    return parser.parse_args(argv)


async def _run(project: str, hard: bool, concurrency: int) -> RefreshResult:
    settings = get_settings()
    async with httpx.AsyncClient() as jira_http, httpx.AsyncClient() as ai_http:
        tracker = JiraClient(jira_http, asyncio.Semaphore(API_SEMAPHORE_LIMIT), settings)
        ai_client = build_ai_client(settings, ai_http, asyncio.Semaphore(AI_SEMAPHORE_LIMIT))
        engine = ClassificationEngine(
            ai_client,
            ai_retries=AI_RETRIES,
            call_timeout=AI_CALL_TIMEOUT or None,
        )

        def on_progress(done: int, total: int, message: str) -> None:
            logger.info("[%s/%s] %s", done, total, message)

        return await refresh_project(
            project,
            tracker,
            build_blob_store(settings),
            engine,
            concurrency=concurrency,
            hard=hard,
            on_progress=on_progress,
        )


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = _parse_args(argv)
    project = str(args.project or "").strip().upper()
    if not project:
        logger.error("No project given and JIRA_PROJECT is empty")
        return 1
    if not settings.jira_token:
        logger.error("JIRA_TOKEN is not configured")
        return 1
    try:
        result = asyncio.run(_run(project, args.hard, clamp_concurrency(args.concurrency)))
    except BugSortError as exc:
        logger.error("Refresh failed for %s: %s", project, exc)
        return 1
    print(json.dumps(result.as_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
