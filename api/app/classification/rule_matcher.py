from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..models import ClassificationDecision, Issue
from ..rules import (
    REGRESSION_KEYWORD,
    is_regression_label,
    is_usability_component,
    is_usability_label,
    match_usability_summary,
)
from ..taxonomy import Category
from .decision import rule_decision


@dataclass(frozen=True)
class RuleMatch:
    rule_id: str
    category: Category
    reason: str


def _regression_label(issue: Issue) -> Optional[RuleMatch]:
    for label in issue.labels:
        if is_regression_label(label):
            return RuleMatch("regression_label", Category.REGRESSION, f"Label '{label}' matched rule")
    return None


def _regression_text(issue: Issue) -> Optional[RuleMatch]:
    combined = f"{issue.summary} {issue.description}".lower()
    if REGRESSION_KEYWORD in combined:
        return RuleMatch(
            "regression_text",
            Category.REGRESSION,
            f'Summary or description contains "{REGRESSION_KEYWORD}"',
        )
    return None


def _usability_label(issue: Issue) -> Optional[RuleMatch]:
    for label in issue.labels:
        if is_usability_label(label):
            return RuleMatch(
                "usability_label", Category.USABILITY, f"Label '{label}' matched usability rule"
            )
    return None


def _usability_component(issue: Issue) -> Optional[RuleMatch]:
    if is_usability_component(issue.component):
        return RuleMatch(
            "usability_component",
            Category.USABILITY,
            f"Component '{issue.component}' matched usability rule",
        )
    return None


def _usability_summary(issue: Issue) -> Optional[RuleMatch]:
    pattern = match_usability_summary(issue.summary)
    if pattern is not None:
        return RuleMatch(
            "usability_summary",
            Category.USABILITY,
            f"Summary matched usability pattern: {pattern.pattern}",
        )
    return None


# Evaluation order is significant: first match wins.
RULES: List[Tuple[str, Callable[[Issue], Optional[RuleMatch]]]] = [
    ("regression_label", _regression_label),
    ("regression_text", _regression_text),
    ("usability_label", _usability_label),
    ("usability_component", _usability_component),
    ("usability_summary", _usability_summary),
]


def match_rules(issue: Issue) -> Optional[RuleMatch]:
    for _rule_id, rule in RULES:
        match = rule(issue)
        if match is not None:
            return match
    return None


def evaluate(issue: Issue) -> Optional[ClassificationDecision]:
    match = match_rules(issue)
    if match is None:
        return None
    return rule_decision(match.category, match.reason)
