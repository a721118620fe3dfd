"""Unit tests for the Jira search client and field normalization."""

import asyncio
from dataclasses import replace

import httpx
import pytest

from api.app.config import get_settings
from api.app.errors import TrackerError
from api.app.jira import PAGE_SIZE, JiraClient, build_jql, normalize_issue

TEAM_FIELD = "customfield_team"
SEVERITY_FIELD = "customfield_severity"


def _settings(**overrides):
    base = replace(
        get_settings(),
        jira_host="https://jira.test",
        jira_token="jira-token",
        jira_team_field=TEAM_FIELD,
        jira_severity_field=SEVERITY_FIELD,
    )
    return replace(base, **overrides)


def _raw(key, **fields):
    base = {
        "summary": f"Issue {key}",
        "status": {"name": "New"},
        "priority": {"name": "Major"},
        "labels": [],
        "components": [],
        "created": "2026-01-10T09:00:00.000+0000",
        "updated": "2026-01-12T09:00:00.000+0000",
    }
    base.update(fields)
    return {"key": key, "fields": base}


def _fetch(handler, settings=None, project="RHOAIENG"):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            jira = JiraClient(client, asyncio.Semaphore(2), settings or _settings())
            return await jira.fetch_issues(project)

    return asyncio.run(go())


def test_normalize_issue_maps_fields():
    raw = _raw(
        "RHOAIENG-1",
        description="Steps to reproduce",
        labels=["ux", "High"],
        components=[{"name": "Dashboard"}, {"name": "Serving"}],
        assignee={"displayName": "Dana"},
        reporter={"displayName": "Lee"},
        versions=[{"name": "2.16"}],
        fixVersions=[{"name": "2.17"}],
        **{TEAM_FIELD: {"value": "Model Serving"}},
    )

    issue = normalize_issue(raw, _settings())

    assert issue.key == "RHOAIENG-1"
    assert issue.status == "New"
    assert issue.priority == "Major"
    assert issue.component == "Dashboard"
    assert issue.team == "Model Serving"
    assert issue.severity == "High"
    assert issue.assignee == "Dana"
    assert issue.reporter == "Lee"
    assert issue.affects_versions == ["2.16"]
    assert issue.fix_versions == ["2.17"]
    assert issue.updated.tzinfo is not None


def test_severity_prefers_custom_field_then_priority():
    custom = normalize_issue(_raw("A-1", **{SEVERITY_FIELD: {"value": "Critical"}}), _settings())
    blocker = normalize_issue(_raw("A-2", priority={"name": "Blocker"}), _settings())
    unknown = normalize_issue(_raw("A-3", priority={"name": "Trivial"}), _settings())

    assert custom.severity == "Critical"
    assert blocker.severity == "Urgent"
    assert unknown.severity == "Low"


def test_team_falls_back_to_component_then_unknown():
    from_component = normalize_issue(_raw("A-1", components=[{"name": "Pipelines"}]), _settings())
    nothing = normalize_issue(_raw("A-2"), _settings())

    assert from_component.team == "Pipelines Team"
    assert nothing.team == "Unknown"
    assert nothing.component == "Unknown"


def test_missing_description_and_people():
    issue = normalize_issue(_raw("A-1", description=None, assignee=None), _settings())

    assert issue.description == ""
    assert issue.assignee is None


def test_build_jql_targets_unresolved_bugs():
    assert build_jql("RHOAIENG") == (
        "project = RHOAIENG AND type = Bug AND resolution = Unresolved ORDER BY updated DESC"
    )


def test_fetch_follows_pagination():
    seen_starts = []

    def handler(request):
        start = int(request.url.params["startAt"])
        seen_starts.append(start)
        assert request.headers["Authorization"] == "Bearer jira-token"
        assert "project = RHOAIENG" in request.url.params["jql"]
        count = PAGE_SIZE if start == 0 else 5
        issues = [_raw(f"RHOAIENG-{start + i}") for i in range(count)]
        return httpx.Response(200, json={"issues": issues, "total": PAGE_SIZE + 5})

    issues = _fetch(handler)

    assert seen_starts == [0, PAGE_SIZE]
    assert len(issues) == PAGE_SIZE + 5
    assert issues[-1].key == f"RHOAIENG-{PAGE_SIZE + 4}"


def test_fetch_skips_issues_without_key():
    def handler(request):
        return httpx.Response(200, json={"issues": [_raw("A-1"), {"fields": {}}]})

    assert [issue.key for issue in _fetch(handler)] == ["A-1"]


def test_fetch_requires_token():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(TrackerError, match="JIRA_TOKEN"):
        _fetch(handler, settings=_settings(jira_token=""))


def test_fetch_auth_failure():
    with pytest.raises(TrackerError) as excinfo:
        _fetch(lambda request: httpx.Response(401, text="Unauthorized"))

    assert excinfo.value.status == 401
    assert "authentication failed" in str(excinfo.value)


def test_fetch_other_error_carries_status_and_body():
    with pytest.raises(TrackerError) as excinfo:
        _fetch(lambda request: httpx.Response(400, text="The value 'NOPE' does not exist"))

    assert excinfo.value.status == 400
    assert "NOPE" in excinfo.value.body


def test_fetch_retries_rate_limit(monkeypatch):
    async def no_sleep(_seconds):
        return None

    monkeypatch.setattr("api.app.jira.asyncio.sleep", no_sleep)
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "2"}, text="slow down"),
            httpx.Response(200, json={"issues": [_raw("A-1")]}),
        ]
    )

    issues = _fetch(lambda request: next(responses))

    assert [issue.key for issue in issues] == ["A-1"]
