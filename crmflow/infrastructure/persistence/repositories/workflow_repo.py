"""Workflow, rule and action repository. Implements IWorkflowRepository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate
from crmflow.application.services.definition_validator import WorkflowDefinitionValidator
from crmflow.domain.entities.workflow import (
    ActionChain,
    ActionEntity,
    RuleEntity,
    WorkflowEntity,
)
from crmflow.domain.enums import TriggerType
from crmflow.domain.exceptions import ResourceNotFoundException
from crmflow.infrastructure.persistence.models.workflow import (
    Workflow,
    WorkflowAction,
    WorkflowRule,
)
from crmflow.shared.utils.generators import generate_cuid


def _action_to_entity(row: WorkflowAction) -> ActionEntity:
    return ActionEntity(
        id=row.id,
        rule_id=row.rule_id,
        action_type=row.action_type,
        action_config=row.action_config,
        delay_minutes=row.delay_minutes,
        order=row.order,
        is_active=row.is_active,
        is_deleted=row.deleted_at is not None,
    )


def _rule_to_entity(row: WorkflowRule, actions: list[ActionEntity] | None = None) -> RuleEntity:
    return RuleEntity(
        id=row.id,
        workflow_id=row.workflow_id,
        name=row.name,
        conditions=row.conditions,
        condition_logic=row.condition_logic,
        order=row.order,
        is_active=row.is_active,
        is_deleted=row.deleted_at is not None,
        actions=actions or [],
    )


def _workflow_to_entity(row: Workflow, rules: list[RuleEntity] | None = None) -> WorkflowEntity:
    return WorkflowEntity(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        entity_type=row.entity_type,
        trigger_type=TriggerType(row.trigger_type),
        description=row.description,
        schedule_expression=row.schedule_expression,
        trigger_fields=list(row.trigger_fields) if row.trigger_fields else None,
        is_active=row.is_active,
        execution_order=row.execution_order,
        stop_on_match=row.stop_on_match,
        is_deleted=row.deleted_at is not None,
        rules=rules or [],
    )


def _orm_to_entity(row: Workflow) -> WorkflowEntity:
    """Map a loaded Workflow (rules and actions selectin-loaded) to the domain entity."""
    rules = [
        _rule_to_entity(rule, [_action_to_entity(a) for a in rule.actions])
        for rule in row.rules
    ]
    return _workflow_to_entity(row, rules)


class WorkflowRepository:
    """Workflow definitions repository.

    Reads return domain entities with rules and actions attached, including
    inactive and deleted children; WorkflowEntity.ordered_rules and
    RuleEntity.ordered_actions filter them. Writes run the definition
    validator first, so rows that reach the table always parse.
    """

    def __init__(
        self, db: AsyncSession, validator: WorkflowDefinitionValidator | None = None
    ) -> None:
        self.db = db
        self.validator = validator or WorkflowDefinitionValidator()

    async def list_for_trigger(
        self, tenant_id: str, entity_type: str, trigger_type: TriggerType
    ) -> list[WorkflowEntity]:
        result = await self.db.execute(
            select(Workflow)
            .where(
                Workflow.tenant_id == tenant_id,
                Workflow.entity_type == entity_type,
                Workflow.trigger_type == trigger_type.value,
                Workflow.is_active.is_(True),
                Workflow.deleted_at.is_(None),
            )
            .order_by(Workflow.execution_order.asc(), Workflow.id.asc())
        )
        return [_orm_to_entity(w) for w in result.scalars().all()]

    async def list_scheduled(self) -> list[WorkflowEntity]:
        result = await self.db.execute(
            select(Workflow)
            .where(
                Workflow.trigger_type == TriggerType.SCHEDULED.value,
                Workflow.is_active.is_(True),
                Workflow.deleted_at.is_(None),
            )
            .order_by(Workflow.tenant_id, Workflow.execution_order.asc(), Workflow.id.asc())
        )
        return [_orm_to_entity(w) for w in result.scalars().all()]

    async def get_action_chain(self, action_id: str) -> ActionChain | None:
        """Return action, rule and workflow regardless of active or deleted state."""
        result = await self.db.execute(
            select(WorkflowAction, WorkflowRule, Workflow)
            .join(WorkflowRule, WorkflowRule.id == WorkflowAction.rule_id)
            .join(Workflow, Workflow.id == WorkflowRule.workflow_id)
            .where(WorkflowAction.id == action_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        action, rule, workflow = row
        return ActionChain(
            workflow=_workflow_to_entity(workflow),
            rule=_rule_to_entity(rule),
            action=_action_to_entity(action),
        )

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> WorkflowEntity | None:
        result = await self.db.execute(
            select(Workflow).where(
                Workflow.id == workflow_id,
                Workflow.tenant_id == tenant_id,
                Workflow.deleted_at.is_(None),
            )
        )
        row = result.scalar_one_or_none()
        return _orm_to_entity(row) if row is not None else None

    async def create_workflow(self, data: WorkflowCreate) -> WorkflowEntity:
        """Validate and persist a workflow; return it without rules."""
        data = self.validator.validate_workflow(data)
        workflow = Workflow(
            id=generate_cuid(),
            tenant_id=data.tenant_id,
            name=data.name,
            description=data.description,
            entity_type=data.entity_type,
            trigger_type=data.trigger_type,
            schedule_expression=data.schedule_expression,
            trigger_fields=data.trigger_fields,
            is_active=data.is_active,
            execution_order=data.execution_order,
            stop_on_match=data.stop_on_match,
            rules=[],
        )
        self.db.add(workflow)
        await self.db.flush()
        return _workflow_to_entity(workflow)

    async def add_rule(self, data: RuleCreate) -> RuleEntity:
        """Validate and persist a rule. Raises ResourceNotFoundException for an unknown workflow."""
        data = self.validator.validate_rule(data)
        parent = await self.db.execute(
            select(Workflow.id).where(
                Workflow.id == data.workflow_id, Workflow.deleted_at.is_(None)
            )
        )
        if parent.scalar_one_or_none() is None:
            raise ResourceNotFoundException("workflow", data.workflow_id)
        rule = WorkflowRule(
            id=generate_cuid(),
            workflow_id=data.workflow_id,
            name=data.name,
            order=data.order,
            conditions=data.conditions,
            condition_logic=data.condition_logic,
            is_active=data.is_active,
            actions=[],
        )
        self.db.add(rule)
        await self.db.flush()
        return _rule_to_entity(rule)

    async def add_action(self, data: ActionCreate) -> ActionEntity:
        """Validate and persist an action. Raises ResourceNotFoundException for an unknown rule."""
        data = self.validator.validate_action(data)
        parent = await self.db.execute(
            select(WorkflowRule.id).where(
                WorkflowRule.id == data.rule_id, WorkflowRule.deleted_at.is_(None)
            )
        )
        if parent.scalar_one_or_none() is None:
            raise ResourceNotFoundException("rule", data.rule_id)
        action = WorkflowAction(
            id=generate_cuid(),
            rule_id=data.rule_id,
            action_type=data.action_type,
            action_config=data.action_config,
            delay_minutes=data.delay_minutes,
            order=data.order,
            is_active=data.is_active,
        )
        self.db.add(action)
        await self.db.flush()
        return _action_to_entity(action)
