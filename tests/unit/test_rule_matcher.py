"""Tests for match_workflow: rule ordering, stop_on_match and failure isolation."""

from crmflow.application.services.rule_matcher import match_workflow
from crmflow.domain.enums import ExecutionStatus
from tests.fakes import cond, make_rule, make_workflow


def test_rules_matched_in_order_without_stop_on_match() -> None:
    workflow = make_workflow(
        [
            make_rule([cond("priority", "in", ["High", "Critical"])], id="r-second", order=2),
            make_rule([cond("priority", "equals", "Critical")], id="r-first", order=1),
            make_rule([cond("priority", "equals", "Low")], id="r-never", order=0),
        ]
    )
    result = match_workflow(workflow, {"priority": "Critical"})
    assert [m.rule.id for m in result.matched] == ["r-first", "r-second"]
    assert result.failures == []


def test_stop_on_match_keeps_first_matching_rule() -> None:
    workflow = make_workflow(
        [
            make_rule([cond("priority", "in", ["High", "Critical"])], id="r-broad", order=2),
            make_rule([cond("priority", "equals", "Critical")], id="r-narrow", order=1),
        ],
        stop_on_match=True,
    )
    result = match_workflow(workflow, {"priority": "Critical"})
    assert [m.rule.id for m in result.matched] == ["r-narrow"]


def test_inactive_rules_are_ignored() -> None:
    workflow = make_workflow(
        [make_rule([cond("priority", "equals", "High")], is_active=False)]
    )
    assert match_workflow(workflow, {"priority": "High"}).matched == []


def test_malformed_rule_fails_and_scan_continues() -> None:
    workflow = make_workflow(
        [
            make_rule([cond("priority", "resembles", "High")], id="r-bad", order=0),
            make_rule([cond("priority", "equals", "High")], id="r-good", order=1),
        ]
    )
    result = match_workflow(workflow, {"priority": "High"})
    assert [m.rule.id for m in result.matched] == ["r-good"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.rule.id == "r-bad"
    assert failure.status is ExecutionStatus.FAILED
    assert failure.details == {"error_code": "VALIDATION_ERROR"}


def test_evaluation_error_skips_rule_and_scan_continues() -> None:
    workflow = make_workflow(
        [
            make_rule([cond("region", "equals", "EU")], id="r-missing", order=0),
            make_rule([cond("priority", "equals", "High")], id="r-good", order=1),
        ],
        stop_on_match=True,
    )
    result = match_workflow(workflow, {"priority": "High"})
    assert [m.rule.id for m in result.matched] == ["r-good"]
    failure = result.failures[0]
    assert failure.status is ExecutionStatus.SKIPPED
    assert failure.details["error"] == "CONDITION_EVALUATION_ERROR"
    assert failure.details["details"]["field"] == "region"


def test_rule_without_conditions_always_matches() -> None:
    workflow = make_workflow([make_rule(None, id="r-any")])
    result = match_workflow(workflow, {})
    assert result.matched[0].proof == ()


def test_proof_details() -> None:
    workflow = make_workflow(
        [
            make_rule(
                [cond("priority", "equals", "High"), cond("amount", "greater_than", 100)],
                name="Big and urgent",
            )
        ]
    )
    matched = match_workflow(workflow, {"priority": "high", "amount": 500}).matched[0]
    details = matched.proof_details()
    assert details["rule_name"] == "Big and urgent"
    assert details["logic"] == "and"
    assert [c["passed"] for c in details["conditions"]] == [True, True]
    assert details["conditions"][0]["actual"] == "high"


def test_changed_operator_uses_previous_snapshot() -> None:
    workflow = make_workflow([make_rule([cond("status", "changed_to", "closed")], id="r")])
    assert match_workflow(workflow, {"status": "closed"}, {"status": "open"}).matched
    assert not match_workflow(workflow, {"status": "closed"}, None).matched
