from typing import Any, List, Mapping, Optional, Tuple

from ..models import ClassifiedIssue, Issue, parse_timestamp


def _classified_at(previous: Any):
    if previous is None:
        return None
    if isinstance(previous, Mapping):
        raw = previous.get("classifiedAt", previous.get("classified_at"))
    else:
        raw = getattr(previous, "classified_at", None)
    try:
        return parse_timestamp(raw)
    except ValueError:
        return None


def needs_reclassification(issue: Issue, previous: Any) -> bool:
    """A previous decision is trusted only while the issue has not changed since it was made."""
    classified_at = _classified_at(previous)
    if classified_at is None:
        return True
    if issue.updated is None:
        return False
    return issue.updated > classified_at


def split_for_reclassification(
    issues: List[Issue],
    previous_by_key: Optional[Mapping[str, ClassifiedIssue]],
) -> Tuple[List[ClassifiedIssue], List[Issue]]:
    carried: List[ClassifiedIssue] = []
    to_classify: List[Issue] = []
    previous_by_key = previous_by_key or {}
    for issue in issues:
        previous = previous_by_key.get(issue.key)
        if previous is not None and not needs_reclassification(issue, previous):
            carried.append(ClassifiedIssue.from_decision(issue, previous.decision))
        else:
            to_classify.append(issue)
    return carried, to_classify
