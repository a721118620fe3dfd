import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings, get_settings
from .errors import TrackerError
from .models import UNKNOWN, Issue

logger = logging.getLogger("bugsort.jira")

PAGE_SIZE = 100
SEVERITY_LABELS = ("Urgent", "High", "Medium", "Low")
PRIORITY_TO_SEVERITY = {
    "Blocker": "Urgent",
    "Critical": "Urgent",
    "Major": "High",
    "Minor": "Medium",
}
BASE_FIELDS = [
    "summary",
    "description",
    "status",
    "priority",
    "components",
    "labels",
    "assignee",
    "reporter",
    "created",
    "updated",
    "resolution",
    "versions",
    "fixVersions",
]


def build_jql(project_key: str) -> str:
    return f"project = {project_key} AND type = Bug AND resolution = Unresolved ORDER BY updated DESC"


async def _request_with_retry(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    params: Optional[Dict[str, Any]] = None,
    timeout: int = 30,
    retries: int = 2,
) -> httpx.Response:
    for attempt in range(retries + 1):
        try:
            response = await client.get(url, headers=headers, params=params, timeout=timeout)
        except httpx.RequestError as exc:
            if attempt >= retries:
                raise TrackerError(None, str(exc), f"Jira request failed: {exc}") from exc
            wait = 2 ** attempt
            logger.warning(
                "Jira request error on attempt %s/%s: %s. Retrying in %ss",
                attempt + 1,
                retries + 1,
                exc,
                wait,
            )
            await asyncio.sleep(wait)
            continue

        retryable = response.status_code in (429, 500, 502, 503, 504)
        if retryable and attempt < retries:
            retry_after = response.headers.get("Retry-After")
            try:
                wait = max(1.0, float(retry_after)) if retry_after else float(2 ** attempt)
            except ValueError:
                wait = float(2 ** attempt)
            logger.warning(
                "Jira request status %s on attempt %s/%s. Retrying in %.1fs",
                response.status_code,
                attempt + 1,
                retries + 1,
                wait,
            )
            await asyncio.sleep(wait)
            continue

        return response

    return response  # pragma: no cover


def _name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        name = value.get("name") or value.get("displayName") or value.get("value")
        return str(name) if name else None
    return None


def extract_component(components: Any) -> str:
    if not components:
        return UNKNOWN
    return _name(components[0]) or UNKNOWN


def extract_severity(fields: Dict[str, Any], severity_field: str) -> str:
    custom = fields.get(severity_field)
    if isinstance(custom, dict) and custom.get("value"):
        return str(custom["value"])

    for label in fields.get("labels") or []:
        if label in SEVERITY_LABELS:
            return label

    priority = _name(fields.get("priority"))
    return PRIORITY_TO_SEVERITY.get(priority or "", "Low")


def extract_team(fields: Dict[str, Any], team_field: str) -> str:
    custom = fields.get(team_field)
    if isinstance(custom, dict) and custom.get("value"):
        return str(custom["value"])
    if isinstance(custom, str) and custom.strip():
        return custom.strip()

    component = extract_component(fields.get("components"))
    if component != UNKNOWN:
        return f"{component} Team"
    return UNKNOWN


def normalize_issue(raw: Dict[str, Any], settings: Optional[Settings] = None) -> Issue:
    settings = settings or get_settings()
    fields = raw.get("fields") or {}
    assignee = fields.get("assignee") or {}
    reporter = fields.get("reporter") or {}
    return Issue(
        key=raw.get("key") or "",
        summary=fields.get("summary") or "",
        description=fields.get("description") or "",
        status=_name(fields.get("status")) or UNKNOWN,
        priority=_name(fields.get("priority")) or UNKNOWN,
        severity=extract_severity(fields, settings.jira_severity_field),
        team=extract_team(fields, settings.jira_team_field),
        component=extract_component(fields.get("components")),
        labels=fields.get("labels") or [],
        assignee=assignee.get("displayName"),
        reporter=reporter.get("displayName"),
        created=fields.get("created"),
        updated=fields.get("updated"),
        affects_versions=[name for name in (_name(v) for v in fields.get("versions") or []) if name],
        fix_versions=[name for name in (_name(v) for v in fields.get("fixVersions") or []) if name],
    )


class JiraClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self._semaphore = semaphore
        self._settings = settings or get_settings()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "BugSort"}
        if self._settings.jira_token:
            headers["Authorization"] = f"Bearer {self._settings.jira_token}"
        return headers

    async def fetch_issues(self, project_key: str) -> List[Issue]:
        """Fetch every unresolved bug of a project, following startAt pagination."""
        settings = self._settings
        if not settings.jira_token:
            raise TrackerError(None, "", "JIRA_TOKEN is required to fetch issues")

        url = f"{settings.jira_host}/rest/api/2/search"
        fields = ",".join(BASE_FIELDS + [settings.jira_team_field, settings.jira_severity_field])
        start_at = 0
        results: List[Issue] = []

        while True:
            params = {
                "jql": build_jql(project_key),
                "fields": fields,
                "startAt": start_at,
                "maxResults": PAGE_SIZE,
            }
            async with self._semaphore:
                response = await _request_with_retry(
                    self._client,
                    url,
                    headers=self._headers(),
                    params=params,
                    timeout=settings.jira_timeout,
                )
            if response.status_code == 401:
                raise TrackerError(401, response.text[:800], "Jira authentication failed. Check JIRA_TOKEN.")
            if not response.is_success:
                raise TrackerError(response.status_code, response.text[:800])

            issues = (response.json() or {}).get("issues") or []
            for raw in issues:
                if not raw.get("key"):
                    logger.warning("Skipping Jira issue without key")
                    continue
                results.append(normalize_issue(raw, settings))

            if len(issues) < PAGE_SIZE:
                break
            start_at += PAGE_SIZE

        logger.info("Fetched %s unresolved bugs for %s", len(results), project_key)
        return results
