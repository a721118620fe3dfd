from collections import Counter
from typing import Any, Dict, Iterable, Mapping, Union

from pydantic import BaseModel

from ..models import UNKNOWN, CategorySummary, ClassifiedIssue, Summary, utc_now
from ..taxonomy import CATEGORY_VALUES, Category

UNSET_VERSION = "Unset"


def _known_category(value: Any) -> Category | None:
    if isinstance(value, Category):
        return value
    if isinstance(value, str) and value in CATEGORY_VALUES:
        return Category(value)
    return None


def _as_record(item: Union[ClassifiedIssue, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json", by_alias=True)
    return dict(item)


def _label(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    text = "" if value is None else str(value).strip()
    return text or UNKNOWN


def build_summary(issues: Iterable[Union[ClassifiedIssue, Mapping[str, Any]]]) -> Summary:
    """Reduce classified issues into grouped counts; rebuilt from scratch on every call."""
    category_counts: Dict[str, int] = {category.value: 0 for category in Category}
    category_severity: Dict[str, Counter] = {category.value: Counter() for category in Category}
    category_team: Dict[str, Counter] = {category.value: Counter() for category in Category}
    by_priority: Counter = Counter()
    by_team: Counter = Counter()
    by_version: Counter = Counter()
    total = 0

    for item in issues:
        record = _as_record(item)
        total += 1
        raw_classification = record.get("classification") or Category.UNCATEGORIZED.value
        category = _known_category(raw_classification)
        priority = _label(record, "priority")
        team = _label(record, "team")
        severity = _label(record, "severity")

        # Unrecognized classifications still count toward the global breakdowns.
        if category is not None:
            category_counts[category.value] += 1
            category_severity[category.value][severity] += 1
            category_team[category.value][team] += 1

        by_priority[priority] += 1
        by_team[team] += 1

        versions = record.get("affectsVersions", record.get("affects_versions")) or []
        if not versions:
            by_version[UNSET_VERSION] += 1
        else:
            for version in versions:
                by_version[str(version)] += 1

    return Summary(
        last_updated=utc_now(),
        total_bugs=total,
        by_classification={
            name: CategorySummary(
                count=category_counts[name],
                by_severity=dict(category_severity[name]),
                by_team=dict(category_team[name]),
            )
            for name in category_counts
        },
        by_priority=dict(by_priority),
        by_team=dict(by_team),
        by_version=dict(by_version),
    )
