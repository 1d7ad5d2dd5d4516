from __future__ import annotations

import uuid

import pytest

from app.services.automation_conditions import evaluate, resolve_value
from app.services.automation_types import AutomationContext


def _context(metadata=None, resource=None) -> AutomationContext:
    return AutomationContext(tenant_id=uuid.uuid4(), metadata=metadata or {}, resource=resource)


def test_empty_conditions_always_match():
    assert evaluate({}, _context()) is True
    assert evaluate(None, _context()) is True


@pytest.mark.parametrize(
    ("days_overdue", "expected"),
    [(2, False), (3, True), (10, True)],
)
def test_numeric_condition_is_a_minimum_threshold(days_overdue, expected):
    context = _context(metadata={"daysOverdue": days_overdue})
    assert evaluate({"daysOverdue": 3}, context) is expected


def test_numeric_strings_compare_numerically():
    assert evaluate({"daysOverdue": 3}, _context(metadata={"daysOverdue": "12"})) is True
    assert evaluate({"daysOverdue": 3}, _context(metadata={"daysOverdue": "soon"})) is False


def test_missing_key_is_not_a_match():
    assert evaluate({"daysOverdue": 3}, _context(metadata={"priority": "high"})) is False


def test_all_conditions_must_hold():
    context = _context(metadata={"daysOverdue": 5, "priority": "low"})
    assert evaluate({"daysOverdue": 3, "priority": "high"}, context) is False
    assert evaluate({"daysOverdue": 3, "priority": "low"}, context) is True


def test_resource_fields_and_dotted_paths_resolve():
    context = _context(
        metadata={"role": "admin"},
        resource={"status": "pending", "owner": {"team": "clinical"}},
    )
    assert evaluate({"status": "pending", "owner.team": "clinical"}, context) is True
    assert evaluate({"owner.team": "finance"}, context) is False


def test_metadata_takes_precedence_over_resource():
    context = _context(metadata={"status": "escalated"}, resource={"status": "pending"})
    assert resolve_value("status", context) == "escalated"


def test_list_expectation_means_membership():
    context = _context(metadata={"priority": "urgent"})
    assert evaluate({"priority": ["high", "urgent"]}, context) is True
    assert evaluate({"priority": ["low", "medium"]}, context) is False


def test_boolean_expectation():
    assert evaluate({"mandatory": True}, _context(metadata={"mandatory": True})) is True
    assert evaluate({"mandatory": True}, _context(metadata={"mandatory": False})) is False


def test_operator_mapping():
    context = _context(metadata={"daysUntilExpiry": 12, "role": "member"})
    assert evaluate({"daysUntilExpiry": {"lte": 14, "gt": 7}}, context) is True
    assert evaluate({"daysUntilExpiry": {"lt": 7}}, context) is False
    assert evaluate({"role": {"ne": "admin"}}, context) is True
    assert evaluate({"role": {"in": ["owner", "admin"]}}, context) is False


def test_unknown_operator_is_not_a_match():
    context = _context(metadata={"daysOverdue": 5})
    assert evaluate({"daysOverdue": {"roughly": 5}}, context) is False
