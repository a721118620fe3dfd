import logging
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger("bugsort.taxonomy")


class Category(str, Enum):
    REGRESSION = "regression"
    USABILITY = "usability"
    GENERAL_ENGINEERING = "general-engineering"
    UNCATEGORIZED = "uncategorized"


CATEGORY_DESCRIPTIONS: Dict[Category, str] = {
    Category.REGRESSION: "bug that broke previously working functionality",
    Category.USABILITY: "UI/UX issues, confusing workflows, accessibility problems",
    Category.GENERAL_ENGINEERING: "logic errors, crashes, performance issues, missing validation",
    Category.UNCATEGORIZED: "if you cannot confidently classify it",
}

CATEGORY_VALUES: List[str] = [category.value for category in Category]


def parse_category(value: Any) -> Optional[Category]:
    """Return the matching category, or None when the value is not in the taxonomy."""
    if isinstance(value, Category):
        return value
    if value is None:
        return None
    token = str(value).strip().lower()
    try:
        return Category(token)
    except ValueError:
        return None


def validate_category(value: Any) -> Category:
    category = parse_category(value)
    if category is None:
        logger.warning("Invalid classification %r, defaulting to %s", value, Category.UNCATEGORIZED.value)
        return Category.UNCATEGORIZED
    return category


def format_categories_for_prompt() -> str:
    return "\n".join(
        f"- {category.value}: {CATEGORY_DESCRIPTIONS[category]}" for category in Category
    )
