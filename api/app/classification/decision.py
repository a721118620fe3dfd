from ..models import ClassificationDecision, utc_now
from ..taxonomy import Category

LLM_DEFAULT_REASON = "Classified by LLM"
FALLBACK_REASON_PREFIX = "Could not classify with rules or LLM"
STOPPED_REASON = "Classification stopped before LLM call"


def rule_decision(category: Category, reason: str) -> ClassificationDecision:
    return ClassificationDecision(
        classification=category,
        classification_method="rule",
        classification_reason=reason,
        classified_at=utc_now(),
    )


def llm_decision(category: Category, reason: str | None) -> ClassificationDecision:
    text = str(reason or "").strip() or LLM_DEFAULT_REASON
    return ClassificationDecision(
        classification=category,
        classification_method="llm",
        classification_reason=text,
        classified_at=utc_now(),
    )


def fallback_decision(cause: object = None) -> ClassificationDecision:
    """Catch-all decision used when the model tier fails; still stamped as a rule decision."""
    detail = str(cause or "").strip()
    reason = f"{FALLBACK_REASON_PREFIX}: {detail}" if detail else FALLBACK_REASON_PREFIX
    return rule_decision(Category.UNCATEGORIZED, reason[:500])


def stopped_decision() -> ClassificationDecision:
    return rule_decision(Category.UNCATEGORIZED, STOPPED_REASON)
