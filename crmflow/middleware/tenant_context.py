"""Tenant header to context variable.

Tenants are authenticated upstream. A missing or malformed header leaves the
context empty and the route's get_tenant_id dependency answers 400.
"""

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from crmflow.core.tenant_context import current_tenant_id, is_valid_tenant_id_format


class TenantContextMiddleware:
    def __init__(self, app: ASGIApp, header_name: str = "X-Tenant-ID") -> None:
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        raw = Headers(scope=scope).get(self.header_name, "").strip()
        token = current_tenant_id.set(raw if is_valid_tenant_id_format(raw) else None)
        try:
            await self.app(scope, receive, send)
        finally:
            current_tenant_id.reset(token)
