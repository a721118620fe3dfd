from .engine import ClassificationEngine
from .rule_matcher import RuleMatch, evaluate
from .staleness import needs_reclassification, split_for_reclassification
from .summary import build_summary

__all__ = [
    "ClassificationEngine",
    "RuleMatch",
    "build_summary",
    "evaluate",
    "needs_reclassification",
    "split_for_reclassification",
]
