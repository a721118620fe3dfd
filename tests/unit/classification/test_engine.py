"""Unit tests for single and batch classification."""

import asyncio

from fakes import FakeClassifier, make_issue

from api.app.ai_client import ModelVerdict, UnavailableAIClient
from api.app.classification.decision import (
    FALLBACK_REASON_PREFIX,
    LLM_DEFAULT_REASON,
    STOPPED_REASON,
)
from api.app.classification.engine import ClassificationEngine
from api.app.errors import ModelRequestError, ModelResponseError
from api.app.taxonomy import Category


def _unmatched(count: int, prefix: str = "BUG"):
    return [make_issue(f"{prefix}-{i}") for i in range(count)]


def test_rule_match_skips_model_call():
    classifier = FakeClassifier()
    engine = ClassificationEngine(classifier)

    result = asyncio.run(engine.classify_one(make_issue(labels=["regression"])))

    assert result.classification == Category.REGRESSION
    assert result.classification_method == "rule"
    assert classifier.calls == []


def test_model_verdict_is_used_when_no_rule_matches():
    classifier = FakeClassifier(default=ModelVerdict(Category.USABILITY, "Layout problem"))
    engine = ClassificationEngine(classifier)

    result = asyncio.run(engine.classify_one(make_issue()))

    assert result.classification == Category.USABILITY
    assert result.classification_method == "llm"
    assert result.classification_reason == "Layout problem"
    assert classifier.calls == ["BUG-1"]


def test_empty_model_reason_gets_default():
    engine = ClassificationEngine(FakeClassifier(default=ModelVerdict(Category.GENERAL_ENGINEERING, "")))

    result = asyncio.run(engine.classify_one(make_issue()))

    assert result.classification_reason == LLM_DEFAULT_REASON


def test_model_failure_becomes_uncategorized_rule_decision():
    classifier = FakeClassifier(outcomes={"BUG-1": ModelRequestError(500, "boom")})
    engine = ClassificationEngine(classifier)

    result = asyncio.run(engine.classify_one(make_issue()))

    assert result.classification == Category.UNCATEGORIZED
    assert result.classification_method == "rule"
    assert result.classification_reason.startswith(FALLBACK_REASON_PREFIX)
    assert "500" in result.classification_reason


def test_unavailable_model_never_raises():
    engine = ClassificationEngine(UnavailableAIClient("AI_PROVIDER is not configured"))

    results = asyncio.run(engine.classify_batch(_unmatched(3)))

    assert len(results) == 3
    assert {r.classification for r in results} == {Category.UNCATEGORIZED}
    assert all("AI_PROVIDER is not configured" in r.classification_reason for r in results)


def test_batch_failure_is_isolated_to_one_issue():
    classifier = FakeClassifier(
        outcomes={
            "BUG-1": ModelResponseError("not json"),
            "BUG-3": RuntimeError("unexpected"),
        }
    )
    engine = ClassificationEngine(classifier)

    results = asyncio.run(engine.classify_batch(_unmatched(5), concurrency=2))
    by_key = {r.key: r for r in results}

    assert len(results) == 5
    assert by_key["BUG-1"].classification == Category.UNCATEGORIZED
    assert by_key["BUG-3"].classification == Category.UNCATEGORIZED
    for key in ("BUG-0", "BUG-2", "BUG-4"):
        assert by_key[key].classification == Category.GENERAL_ENGINEERING
        assert by_key[key].classification_method == "llm"


def test_batch_returns_one_result_per_issue():
    issues = _unmatched(4) + [make_issue("UX-1", labels=["ux"]), make_issue("REG-1", labels=["regression"])]
    engine = ClassificationEngine(FakeClassifier())

    results = asyncio.run(engine.classify_batch(issues))

    assert sorted(r.key for r in results) == sorted(i.key for i in issues)


def test_batch_preserves_issue_fields():
    issue = make_issue(summary="Slow model list", team="Serving Team", affects_versions=["2.16"])
    engine = ClassificationEngine(FakeClassifier())

    [result] = asyncio.run(engine.classify_batch([issue]))

    assert result.issue.model_dump() == issue.model_dump()
    assert result.affects_versions == ["2.16"]


def test_model_calls_never_exceed_concurrency():
    classifier = FakeClassifier(delay=0.01)
    engine = ClassificationEngine(classifier)

    asyncio.run(engine.classify_batch(_unmatched(7), concurrency=3))

    assert len(classifier.calls) == 7
    assert classifier.max_in_flight == 3


def test_progress_reports_rules_then_each_wave():
    issues = [make_issue("REG-1", labels=["regression"])] + _unmatched(4)
    events = []
    engine = ClassificationEngine(FakeClassifier())

    asyncio.run(
        engine.classify_batch(
            issues,
            concurrency=2,
            on_progress=lambda done, total, message: events.append((done, total, message)),
        )
    )

    assert events == [
        (1, 5, "1 classified by rules, 4 queued for LLM"),
        (3, 5, "LLM: 2/4"),
        (5, 5, "LLM: 4/4"),
    ]


def test_async_progress_callback_is_awaited():
    events = []

    async def on_progress(done, total, message):
        events.append(done)

    engine = ClassificationEngine(FakeClassifier())
    asyncio.run(engine.classify_batch(_unmatched(2), concurrency=1, on_progress=on_progress))

    assert events == [0, 1, 2]


def test_empty_batch_reports_once():
    events = []
    engine = ClassificationEngine(FakeClassifier())

    results = asyncio.run(
        engine.classify_batch([], on_progress=lambda *args: events.append(args))
    )

    assert results == []
    assert events == [(0, 0, "0 classified by rules, 0 queued for LLM")]


def test_stop_event_skips_remaining_waves():
    classifier = FakeClassifier()
    engine = ClassificationEngine(classifier)

    async def run():
        stop = asyncio.Event()

        def on_progress(done, total, message):
            if message.startswith("LLM:"):
                stop.set()

        return await engine.classify_batch(
            _unmatched(5), concurrency=2, on_progress=on_progress, stop_event=stop
        )

    results = asyncio.run(run())
    stopped = [r for r in results if r.classification_reason == STOPPED_REASON]

    assert len(results) == 5
    assert len(classifier.calls) == 2
    assert len(stopped) == 3
    assert all(r.classification == Category.UNCATEGORIZED for r in stopped)


def test_call_timeout_falls_back():
    engine = ClassificationEngine(FakeClassifier(delay=1.0), call_timeout=0.05)

    result = asyncio.run(engine.classify_one(make_issue()))

    assert result.classification == Category.UNCATEGORIZED
    assert "timed out" in result.classification_reason


def test_llm_available_reflects_client():
    assert ClassificationEngine(FakeClassifier()).llm_available is True
    assert ClassificationEngine(UnavailableAIClient("not configured")).llm_available is False
