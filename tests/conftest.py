"""Pytest configuration and fixtures for crmflow.

Engine tests run against the in-memory fakes in tests/fakes.py. HTTP tests
use crmflow.main.create_app with the engine swapped for one built on the
same fakes. DB-dependent fixtures skip when DATABASE_URL is not set.
"""

import json
from collections.abc import AsyncIterator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.application.services.action_executor import ActionExecutor
from crmflow.application.services.action_handlers import build_handler_registry
from crmflow.application.services.workflow_engine import WorkflowEngine
from crmflow.infrastructure.persistence import database
from crmflow.infrastructure.services.template_renderer import WorkflowTemplateRenderer
from tests.fakes import FrozenClock, InMemoryAutomationStore, RecordingNotificationService


class WebhookRecorder:
    """httpx.MockTransport handler: records requests and replies with status_code."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.raise_exc: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.content]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryAutomationStore:
    return InMemoryAutomationStore()


@pytest.fixture
def notifications() -> RecordingNotificationService:
    return RecordingNotificationService()


@pytest.fixture
def webhook() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
async def http_client(webhook: WebhookRecorder) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(webhook)) as client:
        yield client


@pytest.fixture
def executor(
    notifications: RecordingNotificationService,
    http_client: httpx.AsyncClient,
    clock: FrozenClock,
) -> ActionExecutor:
    return ActionExecutor(
        build_handler_registry(),
        notifications=notifications,
        renderer=WorkflowTemplateRenderer(),
        http_client=http_client,
        action_timeout_seconds=1.0,
        max_action_attempts=3,
        retry_backoff_minutes=5,
        clock=clock,
    )


@pytest.fixture
def engine(
    store: InMemoryAutomationStore, executor: ActionExecutor, clock: FrozenClock
) -> WorkflowEngine:
    return WorkflowEngine(
        store.unit_of_work,
        executor,
        due_batch_size=50,
        due_worker_concurrency=2,
        due_lease_seconds=60,
        snapshot_scan_limit=100,
        clock=clock,
    )


@pytest.fixture
async def client(engine: WorkflowEngine, store: InMemoryAutomationStore) -> AsyncIterator[AsyncClient]:
    """Async HTTP client against the FastAPI app (ASGI) with the in-memory engine.

    The lifespan does not run under ASGITransport, so app.state is set here.
    """
    from crmflow.api.v1.dependencies import get_execution_log_repo
    from crmflow.main import create_app
    from tests.fakes import FakeExecutionLogRepository

    app = create_app()
    app.state.engine = engine
    app.state.scheduler = None
    app.dependency_overrides[get_execution_log_repo] = lambda: FakeExecutionLogRepository(store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Database session for repository tests. Rolls back after the test.

    Skips when DATABASE_URL is not set. Mark such tests with
    @pytest.mark.requires_db; run without DB via: pytest -m 'not requires_db'.
    """
    if not database.is_configured():
        pytest.skip("Postgres not configured: set DATABASE_URL, then run: alembic upgrade head")
    async with database.get_session_factory()() as session:
        yield session
        await session.rollback()
    await database.dispose_engine()
