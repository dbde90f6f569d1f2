import pytest
from httpx import AsyncClient

from conftest import STORE_ID, VALID_SQL, make_answer, make_completion
from app.ai_feature.pipeline import UNABLE_TO_PROCESS_MESSAGE
from app.ai_feature.query_executor import TIMEOUT_MESSAGE
from app.ai_feature.service import DEFAULT_SUGGESTIONS
from app.core.security import create_access_token

CHART_SPEC = {
    "type": "bar",
    "title": "Daily revenue",
    "dataKey": "revenue",
    "labelKey": "day",
}


@pytest.mark.asyncio
async def test_root_and_health(client: AsyncClient):
    assert (await client.get("/health")).json() == {"status": "ok"}

    response = await client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


@pytest.mark.asyncio
async def test_query_success(client: AsyncClient, fake_llm, fake_readonly_db):
    """Question -> SQL -> rows -> chart in one response"""
    fake_llm.chat.completions.create.return_value = make_completion(
        make_answer(chart_spec=CHART_SPEC)
    )

    response = await client.post("/chat/query", json={"question": "Daily revenue?"})

    assert response.status_code == 200
    data = response.json()
    assert data["answer"] == "Daily revenue"
    assert data["sql"] == VALID_SQL
    assert data["row_count"] == 2
    assert data["rows"][0] == {"day": "2025-01-01", "revenue": "120.50"}
    assert data["chart_spec"] == {"type": "bar", "title": "Daily revenue"}
    assert data["chart_config"]["type"] == "bar"
    assert data["chart_config"]["data"]["datasets"][0]["data"] == [120.5, 80]
    assert data["chart_meta"]["dataKey"] == "revenue"
    assert data["chart_meta"]["labelKey"] == "day"

    # the store id from the token is the only parameter
    fake_readonly_db.raw.assert_awaited_once_with(VALID_SQL, [STORE_ID])


@pytest.mark.asyncio
async def test_query_without_chart(client: AsyncClient):
    response = await client.post("/chat/query", json={"question": "Daily revenue?"})

    data = response.json()
    assert response.status_code == 200
    assert data["chart_spec"] is None
    assert data["chart_config"] is None
    assert data["chart_meta"] is None


@pytest.mark.asyncio
async def test_query_rejected_sql_maps_to_502(client: AsyncClient, fake_llm, fake_readonly_db):
    fake_llm.chat.completions.create.return_value = make_completion(
        make_answer(sql="DROP TABLE orders")
    )

    response = await client.post("/chat/query", json={"question": "Drop it"})

    assert response.status_code == 502
    assert response.json() == {
        "success": False,
        "error": {"code": "AI_ERROR", "message": UNABLE_TO_PROCESS_MESSAGE},
    }
    fake_readonly_db.raw.assert_not_awaited()


@pytest.mark.asyncio
async def test_query_timeout_maps_to_502(client: AsyncClient, fake_readonly_db):
    fake_readonly_db.raw.side_effect = RuntimeError(
        "canceling statement due to statement timeout"
    )

    response = await client.post("/chat/query", json={"question": "Everything ever"})

    assert response.status_code == 502
    assert response.json()["error"]["message"] == TIMEOUT_MESSAGE


@pytest.mark.asyncio
async def test_blank_question_is_400(client: AsyncClient, fake_llm):
    response = await client.post("/chat/query", json={"question": "   "})

    assert response.status_code == 400
    assert response.json()["error"] == {
        "code": "VALIDATION_ERROR",
        "message": "Question cannot be empty",
    }
    fake_llm.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [{}, {"question": ""}, {"question": "a" * 2001}, {"question": "hi", "sql": "SELECT 1"}],
)
async def test_invalid_payload_is_422(client: AsyncClient, payload):
    response = await client.post("/chat/query", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_suggestions(client: AsyncClient):
    response = await client.get("/chat/suggestions")

    assert response.status_code == 200
    assert response.json() == {"suggestions": list(DEFAULT_SUGGESTIONS)}


@pytest.mark.asyncio
async def test_chart_convert(client: AsyncClient):
    rows = [{"day": "2025-01-01", "revenue": 10}, {"day": "2025-01-02", "revenue": 20}]
    chart_config = {"type": "table", "title": "Revenue", "headers": ["day", "revenue"],
                    "rows": [["2025-01-01", 10], ["2025-01-02", 20]]}

    response = await client.post(
        "/chat/chart/convert",
        json={
            "chart_config": chart_config,
            "rows": rows,
            "target_type": "pie",
            "meta": {"dataKey": "revenue", "labelKey": "day"},
        },
    )

    assert response.status_code == 200
    converted = response.json()["chart_config"]
    assert converted["type"] == "pie"
    assert converted["data"]["labels"] == ["2025-01-01", "2025-01-02"]
    assert converted["data"]["datasets"][0]["data"] == [10, 20]


@pytest.mark.asyncio
async def test_chart_convert_unknown_type_is_422(client: AsyncClient):
    response = await client.post(
        "/chat/chart/convert",
        json={
            "chart_config": {"type": "bar"},
            "target_type": "scatter",
            "meta": {"dataKey": "revenue", "labelKey": "day"},
        },
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_chart_convert_malformed_config_is_400(client: AsyncClient):
    response = await client.post(
        "/chat/chart/convert",
        json={
            "chart_config": {"type": "bar", "data": ["oops"]},
            "target_type": "pie",
            "meta": {"dataKey": "revenue", "labelKey": "day"},
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == {
        "code": "VALIDATION_ERROR",
        "message": "Invalid chart configuration: data must be an object",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, url", [("post", "/chat/query"), ("get", "/chat/suggestions")]
)
async def test_requires_token(anonymous_client: AsyncClient, method, url):
    kwargs = {"json": {"question": "Revenue?"}} if method == "post" else {}

    response = await getattr(anonymous_client, method)(url, **kwargs)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_401(anonymous_client: AsyncClient):
    response = await anonymous_client.get(
        "/chat/suggestions", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


@pytest.mark.asyncio
async def test_token_without_store_id_is_401(anonymous_client: AsyncClient):
    token = create_access_token({"user_id": 1})

    response = await anonymous_client.get(
        "/chat/suggestions", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"
