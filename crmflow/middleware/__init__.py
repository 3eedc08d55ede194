"""HTTP middleware (raw ASGI)."""

from crmflow.middleware.request_id import RequestIDMiddleware
from crmflow.middleware.tenant_context import TenantContextMiddleware

__all__ = ["RequestIDMiddleware", "TenantContextMiddleware"]
