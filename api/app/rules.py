import re
from typing import List, Pattern, Tuple

REGRESSION_KEYWORD = "regression"

# Usability labels match exactly or by prefix, never by substring ("ui" must not hit "build").
USABILITY_EXACT_LABELS = frozenset(
    [
        "usability",
        "ux",
        "ui",
        "accessibility",
        "needs-ux",
        "needs-uxd",
        "needs_ux",
        "ux-debt",
        "ux-dev-request",
    ]
)
USABILITY_LABEL_PREFIXES: Tuple[str, ...] = ("ux-", "ux_")

# "Dashboard" alone is not a usability component.
USABILITY_COMPONENTS = frozenset(["uxd", "frontend"])

USABILITY_SUMMARY_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\busability\b"),
    re.compile(r"\bux\b"),
    re.compile(r"\bui\s+issue"),
    re.compile(r"\bconfusing\b"),
    re.compile(r"\baccessibility\b"),
]


def is_regression_label(label: str) -> bool:
    return str(label or "").lower() == REGRESSION_KEYWORD


def is_usability_label(label: str) -> bool:
    token = str(label or "").lower()
    return token in USABILITY_EXACT_LABELS or token.startswith(USABILITY_LABEL_PREFIXES)


def is_usability_component(component: str) -> bool:
    return str(component or "").lower() in USABILITY_COMPONENTS


def match_usability_summary(summary: str) -> Pattern[str] | None:
    haystack = str(summary or "").lower()
    for pattern in USABILITY_SUMMARY_PATTERNS:
        if pattern.search(haystack):
            return pattern
    return None
