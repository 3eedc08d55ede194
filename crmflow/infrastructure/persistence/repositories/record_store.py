"""SQL record store: the narrow write surface actions use on CRM records.

CRM tables are owned by the records service; this module only knows their
names and that each has ``id`` and ``tenant_id`` columns. Table and column
names are never taken from user input without passing the identifier check.
"""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.application.dtos.task import TaskCreate, TaskResult
from crmflow.domain.exceptions import ResourceNotFoundException, ValidationException
from crmflow.infrastructure.persistence.repositories.task_repo import TaskRepository

# entity_type (lowercase) -> table
ENTITY_TABLES: dict[str, str] = {
    "customer": "customer",
    "contact": "contact",
    "lead": "lead",
    "opportunity": "opportunity",
    "ticket": "ticket",
    "order": "sales_order",
}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


def _table_for(entity_type: str) -> str:
    table = ENTITY_TABLES.get(entity_type.strip().lower())
    if table is None:
        raise ValidationException(f"Unknown entity type: {entity_type}", field="entity_type")
    return table


def _column(name: str) -> str:
    if not _IDENTIFIER.match(name) or name in ("id", "tenant_id"):
        raise ValidationException(f"Field {name!r} cannot be written", field="field")
    return name


class SqlRecordStore:
    """Implements IRecordStore over the CRM tables in the same database."""

    def __init__(self, db: AsyncSession, tasks: TaskRepository | None = None) -> None:
        self.db = db
        self.tasks = tasks or TaskRepository(db)

    async def update_fields(
        self, tenant_id: str, entity_type: str, entity_id: str, values: dict[str, Any]
    ) -> None:
        if not values:
            return
        table = _table_for(entity_type)
        params: dict[str, Any] = {"id": entity_id, "tenant_id": tenant_id}
        assignments = []
        for i, (name, value) in enumerate(values.items()):
            assignments.append(f"{_column(name)} = :v{i}")
            params[f"v{i}"] = value
        result = await self.db.execute(
            text(
                f"UPDATE {table} SET {', '.join(assignments)} "
                "WHERE id = :id AND tenant_id = :tenant_id"
            ),
            params,
        )
        if result.rowcount == 0:
            raise ResourceNotFoundException(entity_type, entity_id)

    async def increment_field(
        self, tenant_id: str, entity_type: str, entity_id: str, field: str, amount: int
    ) -> Any:
        table = _table_for(entity_type)
        column = _column(field)
        result = await self.db.execute(
            text(
                f"UPDATE {table} SET {column} = COALESCE({column}, 0) + :amount "
                f"WHERE id = :id AND tenant_id = :tenant_id RETURNING {column}"
            ),
            {"amount": amount, "id": entity_id, "tenant_id": tenant_id},
        )
        row = result.first()
        if row is None:
            raise ResourceNotFoundException(entity_type, entity_id)
        return row[0]

    async def create_task(self, data: TaskCreate) -> TaskResult:
        return await self.tasks.create(data)

    async def list_snapshots(
        self, tenant_id: str, entity_type: str, limit: int, after_id: str | None = None
    ) -> list[dict[str, Any]]:
        table = _table_for(entity_type)
        params: dict[str, Any] = {"tenant_id": tenant_id, "limit": limit}
        keyset = ""
        if after_id is not None:
            keyset = " AND id > :after_id"
            params["after_id"] = after_id
        result = await self.db.execute(
            text(
                f"SELECT * FROM {table} WHERE tenant_id = :tenant_id{keyset} "
                "ORDER BY id LIMIT :limit"
            ),
            params,
        )
        return [dict(row) for row in result.mappings().all()]
