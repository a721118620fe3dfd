from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .taxonomy import Category

DecisionMethod = Literal["rule", "llm"]

UNKNOWN = "Unknown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            # Jira emits offsets without a colon, e.g. 2026-02-26T12:00:00.000+0000
            parsed = None
            for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Issue(CamelModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    summary: str = ""
    description: str = ""
    status: str = UNKNOWN
    priority: str = UNKNOWN
    severity: str = UNKNOWN
    team: str = UNKNOWN
    component: str = UNKNOWN
    labels: List[str] = Field(default_factory=list)
    assignee: str | None = None
    reporter: str | None = None
    created: datetime | None = None
    updated: datetime | None = None
    affects_versions: List[str] = Field(default_factory=list)
    fix_versions: List[str] = Field(default_factory=list)

    @field_validator("summary", "description", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("status", "priority", "severity", "team", "component", mode="before")
    @classmethod
    def _unknown_if_blank(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        return text or UNKNOWN

    @field_validator("labels", "affects_versions", "fix_versions", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> List[str]:
        if not value:
            return []
        return [str(item) for item in value if str(item).strip()]

    @field_validator("created", "updated", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class ClassificationDecision(CamelModel):
    model_config = ConfigDict(frozen=True)

    classification: Category
    classification_method: DecisionMethod
    classification_reason: str = Field(min_length=1)
    classified_at: datetime = Field(default_factory=utc_now)

    @field_validator("classified_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)


class ClassifiedIssue(Issue):
    classification: Category
    classification_method: DecisionMethod
    classification_reason: str = Field(min_length=1)
    classified_at: datetime

    @field_validator("classified_at", mode="before")
    @classmethod
    def _classified_timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    @classmethod
    def from_decision(cls, issue: Issue, decision: ClassificationDecision) -> "ClassifiedIssue":
        fields = {name: getattr(issue, name) for name in Issue.model_fields}
        fields.update({name: getattr(decision, name) for name in ClassificationDecision.model_fields})
        return cls(**fields)

    @property
    def issue(self) -> Issue:
        return Issue(**{name: getattr(self, name) for name in Issue.model_fields})

    @property
    def decision(self) -> ClassificationDecision:
        return ClassificationDecision(
            classification=self.classification,
            classification_method=self.classification_method,
            classification_reason=self.classification_reason,
            classified_at=self.classified_at,
        )


class CategorySummary(CamelModel):
    count: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)
    by_team: Dict[str, int] = Field(default_factory=dict)


class Summary(CamelModel):
    last_updated: datetime = Field(default_factory=utc_now)
    total_bugs: int = 0
    by_classification: Dict[str, CategorySummary] = Field(default_factory=dict)
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_team: Dict[str, int] = Field(default_factory=dict)
    by_version: Dict[str, int] = Field(default_factory=dict)


class ClassifiedBugsDocument(CamelModel):
    last_updated: datetime = Field(default_factory=utc_now)
    bugs: List[ClassifiedIssue] = Field(default_factory=list)
