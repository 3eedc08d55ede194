"""Rule matcher: select the rules of one workflow that hold for a snapshot."""

from collections.abc import Mapping
from typing import Any

from crmflow.application.dtos.matching import MatchedRule, MatchResult, RuleFailure
from crmflow.application.services.condition_evaluator import evaluate_with_proof
from crmflow.domain.entities.workflow import WorkflowEntity
from crmflow.domain.enums import ExecutionStatus
from crmflow.domain.exceptions import ConditionEvaluationError
from crmflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


def match_workflow(
    workflow: WorkflowEntity,
    snapshot: Mapping[str, Any],
    previous_snapshot: Mapping[str, Any] | None = None,
) -> MatchResult:
    """Evaluate active rules ascending by (order, id).

    With stop_on_match, scanning stops at the first matching rule. A rule with
    a malformed payload becomes a FAILED failure and one whose evaluation
    raised becomes a SKIPPED failure; neither stops the scan.
    """
    result = MatchResult()
    for rule in workflow.ordered_rules():
        if rule.condition_set is None:
            logger.warning(
                "Rule %s of workflow %s has malformed conditions: %s",
                rule.id,
                workflow.id,
                rule.parse_error,
            )
            result.failures.append(
                RuleFailure(
                    rule=rule,
                    status=ExecutionStatus.FAILED,
                    error_message=f"Malformed conditions: {rule.parse_error}",
                    details={"error_code": "VALIDATION_ERROR"},
                )
            )
            continue
        try:
            matched, proof = evaluate_with_proof(snapshot, rule.condition_set, previous_snapshot)
        except ConditionEvaluationError as e:
            logger.info("Rule %s not evaluated: %s", rule.id, e.message)
            result.failures.append(
                RuleFailure(
                    rule=rule,
                    status=ExecutionStatus.SKIPPED,
                    error_message=e.message,
                    details=e.to_dict(),
                )
            )
            continue
        if not matched:
            continue
        result.matched.append(
            MatchedRule(rule=rule, logic=rule.condition_set.logic.value, proof=proof)
        )
        if workflow.stop_on_match:
            break
    return result
