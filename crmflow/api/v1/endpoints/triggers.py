"""Trigger API: the record service reports entity lifecycle events here."""

from typing import Annotated

from fastapi import APIRouter, Depends

from crmflow.api.v1.dependencies import get_engine, get_tenant_id
from crmflow.application.interfaces.services import IWorkflowEngine
from crmflow.schemas.trigger import TriggerRequest, TriggerResponse
from crmflow.shared.utils.generators import generate_cuid

router = APIRouter()


@router.post("", response_model=TriggerResponse)
async def submit_trigger(
    body: TriggerRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    engine: Annotated[IWorkflowEngine, Depends(get_engine)],
) -> TriggerResponse:
    """Run matching workflows for one event.

    Immediate actions have run when this returns; deferred actions are queued
    and show up in the execution log once the scheduler runs them.
    """
    trigger_instance_id = body.trigger_instance_id or generate_cuid()
    entries = await engine.process_trigger(
        tenant_id,
        body.entity_type,
        body.entity_id,
        body.trigger_type,
        body.snapshot,
        previous_snapshot=body.previous_snapshot,
        trigger_instance_id=trigger_instance_id,
        triggered_at=body.triggered_at,
    )
    return TriggerResponse.from_entries(entries, trigger_instance_id=trigger_instance_id)
