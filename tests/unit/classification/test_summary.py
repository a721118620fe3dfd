"""Unit tests for summary aggregation."""

from fakes import make_issue

from api.app.classification.decision import llm_decision, rule_decision
from api.app.classification.summary import UNSET_VERSION, build_summary
from api.app.models import ClassifiedIssue
from api.app.taxonomy import Category


def _classified(key, category, method="rule", **fields):
    issue = make_issue(key, **fields)
    if method == "llm":
        decision = llm_decision(category, "model said so")
    else:
        decision = rule_decision(category, "matched")
    return ClassifiedIssue.from_decision(issue, decision)


def test_empty_input_has_every_category_at_zero():
    summary = build_summary([])

    assert summary.total_bugs == 0
    assert set(summary.by_classification) == {c.value for c in Category}
    assert all(entry.count == 0 for entry in summary.by_classification.values())
    assert summary.by_priority == {}
    assert summary.by_version == {}


def test_counts_by_category_severity_and_team():
    bugs = [
        _classified("A-1", Category.REGRESSION, severity="Urgent", team="Serving Team"),
        _classified("A-2", Category.REGRESSION, severity="High", team="Serving Team"),
        _classified("A-3", Category.USABILITY, severity="High", team="Dashboard Team"),
        _classified("A-4", Category.GENERAL_ENGINEERING, method="llm", team="Serving Team"),
    ]

    summary = build_summary(bugs)
    regression = summary.by_classification["regression"]

    assert summary.total_bugs == 4
    assert regression.count == 2
    assert regression.by_severity == {"Urgent": 1, "High": 1}
    assert regression.by_team == {"Serving Team": 2}
    assert summary.by_classification["usability"].count == 1
    assert summary.by_classification["general-engineering"].count == 1
    assert summary.by_classification["uncategorized"].count == 0
    assert summary.by_team == {"Serving Team": 3, "Dashboard Team": 1}
    assert summary.by_priority == {"Major": 4}


def test_versions_fan_out_and_unset_bucket():
    bugs = [
        _classified("A-1", Category.REGRESSION, affects_versions=["2.15", "2.16"]),
        _classified("A-2", Category.USABILITY, affects_versions=["2.16"]),
        _classified("A-3", Category.USABILITY),
    ]

    summary = build_summary(bugs)

    assert summary.by_version == {"2.15": 1, "2.16": 2, UNSET_VERSION: 1}


def test_mapping_records_and_unknown_categories():
    records = [
        {"key": "A-1", "classification": "regression", "priority": "Critical", "affectsVersions": ["1.0"]},
        {"key": "A-2", "classification": "bogus", "priority": "Minor"},
        {"key": "A-3", "priority": ""},
    ]

    summary = build_summary(records)

    assert summary.total_bugs == 3
    assert summary.by_classification["regression"].count == 1
    # missing classification is counted as uncategorized, unknown values are not
    assert summary.by_classification["uncategorized"].count == 1
    assert sum(entry.count for entry in summary.by_classification.values()) == 2
    assert summary.by_priority == {"Critical": 1, "Minor": 1, "Unknown": 1}
    assert summary.by_version == {"1.0": 1, UNSET_VERSION: 2}


def test_document_uses_camel_case_keys():
    document = build_summary([_classified("A-1", Category.USABILITY)]).to_document()

    assert set(document) == {"lastUpdated", "totalBugs", "byClassification", "byPriority", "byTeam", "byVersion"}
    assert document["byClassification"]["usability"] == {
        "count": 1,
        "bySeverity": {"High": 1},
        "byTeam": {"Pipelines Team": 1},
    }


def test_four_record_example():
    records = [
        {"key": "A-1", "classification": "regression", "priority": "High", "team": "A", "severity": "High"},
        {"key": "A-2", "classification": "regression", "priority": "High", "team": "A", "severity": "Low"},
        {"key": "A-3", "classification": "usability", "priority": "Low", "team": "B", "severity": "Low"},
        {"key": "A-4", "classification": "general-engineering", "priority": "Medium", "team": "C"},
    ]

    summary = build_summary(records)

    assert summary.by_classification["regression"].count == 2
    assert summary.by_classification["usability"].count == 1
    assert summary.by_priority["High"] == 2
    assert summary.by_team["A"] == 2
    assert summary.by_classification["general-engineering"].by_severity == {"Unknown": 1}
