"""Per-request tenant id, read by the API dependencies."""

import re
from contextvars import ContextVar

# Ids accepted from headers: tenant ids and request ids alike.
HEADER_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")

current_tenant_id: ContextVar[str | None] = ContextVar("current_tenant_id", default=None)


def get_tenant_id() -> str | None:
    return current_tenant_id.get()


def is_valid_tenant_id_format(value: str | None) -> bool:
    return bool(value) and HEADER_ID_RE.fullmatch(value) is not None
