import asyncio
import inspect
import json
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

from ..ai_client import IssueClassifier, ModelVerdict, UnavailableAIClient
from ..errors import ModelRequestError, ModelUnavailable
from ..models import ClassifiedIssue, Issue
from .decision import fallback_decision, llm_decision, stopped_decision
from .rule_matcher import evaluate

logger = logging.getLogger("bugsort.engine")

DEFAULT_BATCH_CONCURRENCY = 20

ProgressCallback = Callable[[int, int, str], Union[None, Awaitable[None]]]

T = TypeVar("T")


def _chunk(items: Sequence[T], size: int) -> List[List[T]]:
    size = max(1, size)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def _notify(on_progress: Optional[ProgressCallback], classified: int, total: int, message: str) -> None:
    if on_progress is None:
        return
    result = on_progress(classified, total, message)
    if inspect.isawaitable(result):
        await result


class ClassificationEngine:
    """Two-tier cascade: deterministic rules first, the injected model client for the rest."""

    def __init__(
        self,
        ai_client: IssueClassifier,
        ai_retries: int = 0,
        call_timeout: Optional[float] = None,
    ) -> None:
        self._ai_client = ai_client
        self._ai_retries = max(0, ai_retries)
        self._call_timeout = call_timeout if call_timeout and call_timeout > 0 else None

    @property
    def llm_available(self) -> bool:
        return not isinstance(self._ai_client, UnavailableAIClient)

    def classify_with_rules(self, issue: Issue) -> Optional[ClassifiedIssue]:
        decision = evaluate(issue)
        if decision is None:
            return None
        return ClassifiedIssue.from_decision(issue, decision)

    async def _call_model(self, issue: Issue) -> ModelVerdict:
        call = self._ai_client.classify_issue_with_retry(issue, retries=self._ai_retries)
        if self._call_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self._call_timeout)
        except asyncio.TimeoutError as exc:
            raise ModelRequestError(None, f"timed out after {self._call_timeout:g}s") from exc

    async def _classify_with_model(self, issue: Issue) -> ClassifiedIssue:
        started = time.perf_counter()
        try:
            verdict = await self._call_model(issue)
        except ModelUnavailable as exc:
            logger.debug("LLM unavailable for %s: %s", issue.key, exc)
            decision = fallback_decision(exc)
        except Exception as exc:
            logger.warning("LLM classification failed for %s: %s", issue.key, exc)
            decision = fallback_decision(exc)
        else:
            decision = llm_decision(verdict.classification, verdict.reason)

        classified = ClassifiedIssue.from_decision(issue, decision)
        logger.info(
            "classification_event %s",
            json.dumps(
                {
                    "key": issue.key,
                    "method": classified.classification_method,
                    "category": classified.classification.value,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                },
                ensure_ascii=False,
            ),
        )
        return classified

    async def classify_one(self, issue: Issue) -> ClassifiedIssue:
        ruled = self.classify_with_rules(issue)
        if ruled is not None:
            return ruled
        return await self._classify_with_model(issue)

    async def classify_batch(
        self,
        issues: Sequence[Issue],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[ClassifiedIssue]:
        """Classify every issue exactly once; model calls run in waves of at most ``concurrency``.

        A wave is fully settled before the next one starts. Setting ``stop_event`` prevents
        further waves; the issues left over get a catch-all decision instead of a model call.
        """
        total = len(issues)
        results: List[ClassifiedIssue] = []
        queue: List[Issue] = []

        for issue in issues:
            ruled = self.classify_with_rules(issue)
            if ruled is not None:
                results.append(ruled)
            else:
                queue.append(issue)

        rule_count = len(results)
        await _notify(
            on_progress,
            rule_count,
            total,
            f"{rule_count} classified by rules, {len(queue)} queued for LLM",
        )

        llm_done = 0
        waves = _chunk(queue, concurrency)
        for index, wave in enumerate(waves):
            if stop_event is not None and stop_event.is_set():
                remaining = [issue for pending in waves[index:] for issue in pending]
                logger.warning("Batch stopped with %s issues not sent to the LLM", len(remaining))
                results.extend(ClassifiedIssue.from_decision(issue, stopped_decision()) for issue in remaining)
                await _notify(on_progress, total, total, f"Stopped: {len(remaining)} issues left uncategorized")
                break

            wave_results = await asyncio.gather(*(self._classify_with_model(issue) for issue in wave))
            results.extend(wave_results)
            llm_done += len(wave)
            await _notify(on_progress, rule_count + llm_done, total, f"LLM: {llm_done}/{len(queue)}")

        return results
