import httpx
import openai
import pytest

from conftest import STORE_ID, VALID_SQL, make_answer, make_completion
from app.core.errors import AIError
from app.ai_feature.pipeline import (
    REQUEST_FAILED_MESSAGE,
    UNAVAILABLE_MESSAGE,
    AIQueryPipeline,
    PipelineConfig,
    compute_backoff,
    is_retryable_error,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class StatusError(Exception):
    def __init__(self, status):
        super().__init__(f"request failed with status {status}")
        self.status = status


class CodedError(Exception):
    def __init__(self, code):
        super().__init__("socket error")
        self.code = code


def rate_limit_error():
    return openai.RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=REQUEST), body=None
    )


def auth_error():
    return openai.AuthenticationError(
        "Incorrect API key", response=httpx.Response(401, request=REQUEST), body=None
    )


@pytest.mark.parametrize(
    "error",
    [
        StatusError(429),
        StatusError(500),
        StatusError(502),
        StatusError(503),
        CodedError("ETIMEDOUT"),
        CodedError("ECONNRESET"),
        CodedError("ECONNABORTED"),
        Exception("Request timed out"),
        Exception("The operation was aborted"),
        TimeoutError(),
        ConnectionResetError(),
        rate_limit_error(),
        openai.APITimeoutError(request=REQUEST),
        openai.APIConnectionError(request=REQUEST),
        httpx.ConnectTimeout("connect timeout"),
    ],
)
def test_retryable_errors(error):
    assert is_retryable_error(error) is True


@pytest.mark.parametrize(
    "error",
    [
        None,
        StatusError(400),
        StatusError(401),
        StatusError(403),
        StatusError(404),
        CodedError("EACCES"),
        ValueError("bad input"),
        auth_error(),
    ],
)
def test_non_retryable_errors(error):
    assert is_retryable_error(error) is False


def test_status_wins_over_message():
    """A final HTTP status is not retried even if the text mentions a timeout"""
    error = StatusError(400)
    error.args = ("timeout parameter is invalid",)

    assert is_retryable_error(error) is False


def test_compute_backoff():
    assert [compute_backoff(attempt, 1.0, 8.0) for attempt in range(5)] == [1, 2, 4, 8, 8]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(pipeline, fake_llm, fake_sleep):
    """3 retries means 4 calls and delays of 1s, 2s, 4s"""
    errors = [StatusError(503) for _ in range(4)]
    fake_llm.chat.completions.create.side_effect = errors

    with pytest.raises(AIError) as exc_info:
        await pipeline.process_question(STORE_ID, "Revenue?")

    assert exc_info.value.message == UNAVAILABLE_MESSAGE
    assert exc_info.value.__cause__ is errors[-1]
    assert fake_llm.chat.completions.create.await_count == 4
    assert fake_sleep.delays == [1, 2, 4]


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(pipeline, fake_llm, fake_sleep):
    fake_llm.chat.completions.create.side_effect = [
        rate_limit_error(),
        openai.APITimeoutError(request=REQUEST),
        make_completion(make_answer()),
    ]

    result = await pipeline.process_question(STORE_ID, "Revenue?")

    assert result.sql == VALID_SQL
    assert fake_llm.chat.completions.create.await_count == 3
    assert fake_sleep.delays == [1, 2]


@pytest.mark.asyncio
async def test_non_retryable_error_fails_fast(pipeline, fake_llm, fake_sleep):
    error = auth_error()
    fake_llm.chat.completions.create.side_effect = error

    with pytest.raises(AIError) as exc_info:
        await pipeline.process_question(STORE_ID, "Revenue?")

    assert exc_info.value.message == REQUEST_FAILED_MESSAGE
    assert exc_info.value.__cause__ is error
    assert fake_llm.chat.completions.create.await_count == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_backoff_is_capped(fake_llm, fake_schema_service, fake_sleep):
    config = PipelineConfig(
        max_retries=4, backoff_base_seconds=3.0, backoff_max_seconds=5.0
    )
    pipeline = AIQueryPipeline(
        fake_llm, fake_schema_service, config=config, sleep=fake_sleep
    )
    fake_llm.chat.completions.create.side_effect = [StatusError(500) for _ in range(5)]

    with pytest.raises(AIError):
        await pipeline.process_question(STORE_ID, "Revenue?")

    assert fake_sleep.delays == [3, 5, 5, 5]


@pytest.mark.asyncio
async def test_zero_retries(fake_llm, fake_schema_service, fake_sleep):
    pipeline = AIQueryPipeline(
        fake_llm,
        fake_schema_service,
        config=PipelineConfig(max_retries=0),
        sleep=fake_sleep,
    )
    fake_llm.chat.completions.create.side_effect = StatusError(429)

    with pytest.raises(AIError) as exc_info:
        await pipeline.process_question(STORE_ID, "Revenue?")

    assert exc_info.value.message == UNAVAILABLE_MESSAGE
    assert fake_llm.chat.completions.create.await_count == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_timeout_is_passed_per_call(pipeline, fake_llm):
    await pipeline.process_question(STORE_ID, "Revenue?")

    assert fake_llm.chat.completions.create.await_args.kwargs["timeout"] == 30.0


@pytest.mark.asyncio
async def test_negative_retries_still_make_one_call(
    fake_llm, fake_schema_service, fake_sleep
):
    pipeline = AIQueryPipeline(
        fake_llm,
        fake_schema_service,
        config=PipelineConfig(max_retries=-1),
        sleep=fake_sleep,
    )
    fake_llm.chat.completions.create.side_effect = StatusError(503)

    with pytest.raises(AIError) as exc_info:
        await pipeline.process_question(STORE_ID, "Revenue?")

    assert exc_info.value.message == UNAVAILABLE_MESSAGE
    assert fake_llm.chat.completions.create.await_count == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_negative_retries_success(fake_llm, fake_schema_service, fake_sleep):
    pipeline = AIQueryPipeline(
        fake_llm,
        fake_schema_service,
        config=PipelineConfig(max_retries=-3),
        sleep=fake_sleep,
    )

    result = await pipeline.process_question(STORE_ID, "Revenue?")

    assert result.sql == VALID_SQL
    assert fake_llm.chat.completions.create.await_count == 1
