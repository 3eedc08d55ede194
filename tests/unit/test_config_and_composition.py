"""Tests for Settings validation and the engine composition root."""

import pytest
from pydantic import ValidationError

from crmflow.core.composition import build_engine, create_http_client
from crmflow.core.config import Settings
from crmflow.domain.enums import ExecutionStatus
from crmflow.domain.exceptions import ValidationException
from crmflow.infrastructure.persistence.repositories.record_store import _column, _table_for
from tests.fakes import make_action, make_rule, make_workflow


def test_scheduler_requires_database_url() -> None:
    with pytest.raises(ValidationError, match="DATABASE_URL"):
        Settings(scheduler_enabled=True, database_url="")
    assert Settings(scheduler_enabled=True, database_url="postgresql+asyncpg://x/y").scheduler_enabled


def test_engine_knobs_are_bounded() -> None:
    with pytest.raises(ValidationError):
        Settings(action_timeout_seconds=0)
    with pytest.raises(ValidationError):
        Settings(due_worker_concurrency=0)


async def test_build_engine_with_injected_unit_of_work(store, notifications) -> None:
    settings = Settings(database_url="")
    store.add_record("Ticket", {"id": "T-1", "owner_id": None})
    store.add_workflow(make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])]))
    async with create_http_client(settings) as http_client:
        engine = build_engine(
            settings, http_client, uow_factory=store.unit_of_work, notifications=notifications
        )
        entries = await engine.process_trigger(
            "tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": None}
        )
    assert [e.status for e in entries] == [ExecutionStatus.SUCCESS]


def test_record_store_identifier_checks() -> None:
    assert _table_for("Order") == "sales_order"
    assert _table_for("ticket") == "ticket"
    with pytest.raises(ValidationException):
        _table_for("Spaceship")
    assert _column("owner_id") == "owner_id"
    for bad in ("id", "tenant_id", "Owner", "owner_id; drop table ticket"):
        with pytest.raises(ValidationException):
            _column(bad)
