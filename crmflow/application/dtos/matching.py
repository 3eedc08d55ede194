"""DTOs produced by the rule matcher."""

from dataclasses import dataclass, field
from typing import Any

from crmflow.domain.entities.workflow import RuleEntity
from crmflow.domain.enums import ExecutionStatus


@dataclass(frozen=True)
class ConditionProof:
    """Outcome of one condition, recorded in the execution log details."""

    field: str
    operator: str
    expected: Any
    actual: Any
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        expected = list(self.expected) if isinstance(self.expected, tuple) else self.expected
        return {
            "field": self.field,
            "operator": self.operator,
            "expected": expected,
            "actual": self.actual,
            "passed": self.passed,
        }


@dataclass(frozen=True)
class MatchedRule:
    """A rule whose conditions held, plus the proof."""

    rule: RuleEntity
    logic: str
    proof: tuple[ConditionProof, ...] = ()

    def proof_details(self) -> dict[str, Any]:
        return {
            "rule_name": self.rule.name,
            "logic": self.logic,
            "conditions": [p.to_dict() for p in self.proof],
        }


@dataclass(frozen=True)
class RuleFailure:
    """A rule that could not be evaluated.

    status is FAILED for a malformed payload and SKIPPED for an evaluation error.
    """

    rule: RuleEntity
    status: ExecutionStatus
    error_message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class MatchResult:
    matched: list[MatchedRule] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)
