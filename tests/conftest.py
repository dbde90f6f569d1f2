import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.core.database import get_db
from app.core.schemas import StoreContext
from app.core.security import get_current_store
from app.api.endpoints.chat import get_chat_service
from app.ai_feature.pipeline import AIQueryPipeline, PipelineConfig
from app.ai_feature.query_executor import QueryExecutor
from app.ai_feature.service import ChatService

STORE_ID = "550e8400-e29b-41d4-a716-446655440000"

VALID_SQL = (
    "SELECT DATE_TRUNC('day', o.date_created) AS day, SUM(o.total) AS revenue "
    "FROM orders o WHERE o.store_id = $1 GROUP BY day ORDER BY day LIMIT 30"
)


def make_answer(sql=VALID_SQL, explanation="Daily revenue", chart_spec=None):
    """JSON text the model would return."""
    return json.dumps({"sql": sql, "explanation": explanation, "chartSpec": chart_spec})


def make_completion(content):
    """Shape of an AsyncOpenAI chat completion, as far as the pipeline reads it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


class RecordingSleep:
    """Stands in for asyncio.sleep: records requested delays, never waits."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def fake_llm():
    create = AsyncMock(return_value=make_completion(make_answer()))
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.fixture
def store_context():
    return StoreContext(
        store_id=STORE_ID,
        currency="EUR",
        total_orders=120,
        total_products=35,
        total_customers=80,
        total_categories=6,
    )


@pytest.fixture
def fake_schema_service(store_context):
    return SimpleNamespace(get_store_context=AsyncMock(return_value=store_context))


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def pipeline(fake_llm, fake_schema_service, fake_sleep):
    return AIQueryPipeline(
        fake_llm,
        fake_schema_service,
        config=PipelineConfig(),
        sleep=fake_sleep,
    )


@pytest.fixture
def fake_readonly_db():
    rows = [
        {"day": "2025-01-01", "revenue": "120.50"},
        {"day": "2025-01-02", "revenue": "80"},
    ]
    return SimpleNamespace(raw=AsyncMock(return_value=rows))


@pytest.fixture
def chat_service(pipeline, fake_readonly_db):
    return ChatService(pipeline, QueryExecutor(fake_readonly_db))


# Store the token resolves to
@pytest.fixture
def current_store():
    return SimpleNamespace(id=uuid.UUID(STORE_ID), is_active=True)


# Client without authentication override, for 401 checks
@pytest_asyncio.fixture(scope="function")
async def anonymous_client(chat_service):
    async def override_get_db():
        yield None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_chat_service] = lambda: chat_service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# Client for an authenticated store
@pytest_asyncio.fixture(scope="function")
async def client(chat_service, current_store):
    app.dependency_overrides[get_current_store] = lambda: current_store
    app.dependency_overrides[get_chat_service] = lambda: chat_service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
