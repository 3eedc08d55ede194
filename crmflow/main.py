"""ASGI entry point: `uvicorn crmflow.main:app`.

create_app() reads Settings when called, so tests can adjust the
environment and clear the settings cache before building an app.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crmflow.api.v1 import api_router
from crmflow.core.config import get_settings
from crmflow.core.exception_handlers import register_exception_handlers
from crmflow.core.lifespan import create_lifespan
from crmflow.middleware import RequestIDMiddleware, TenantContextMiddleware


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )
    register_exception_handlers(app)

    # add_middleware prepends: the request id layer runs outermost.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["GET", "POST"],
        allow_headers=[settings.tenant_header_name, settings.request_id_header, "Content-Type"],
        expose_headers=[settings.request_id_header],
    )
    app.add_middleware(TenantContextMiddleware, header_name=settings.tenant_header_name)
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
