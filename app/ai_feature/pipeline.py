import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import openai
from pydantic import ValidationError as SchemaValidationError

from app.ai_feature.prompts import build_system_prompt
from app.ai_feature.schema_context import is_valid_uuid
from app.ai_feature.sql_validator import validate_sql
from app.core.config import Settings
from app.core.errors import AIError, ValidationError
from app.core.schemas import AIQueryResult, ChartSpec, StoreContext


# -----------------------------------------------------------------------------
# PIPELINE MODULE - NL -> SQL orchestration
# Purpose: turn a store owner's question into a validated, parameterized query.
# Why: the model is untrusted and flaky; this module retries transient
#      failures, parses its output defensively and never lets unvalidated SQL out.
#
# Flow:
#   question -> store context -> system prompt -> chat completion (retried)
#   -> JSON parse -> SQL validation -> chart spec check -> AIQueryResult
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

MAX_QUESTION_LENGTH = 2000

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503})
RETRYABLE_ERROR_CODES = frozenset({"ETIMEDOUT", "ECONNRESET", "ECONNABORTED"})
RETRYABLE_EXCEPTIONS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    httpx.TimeoutException,
    httpx.NetworkError,
    TimeoutError,
    ConnectionResetError,
    ConnectionAbortedError,
)
_RETRYABLE_MESSAGE_RE = re.compile(r"timeout|timed out|aborted", re.IGNORECASE)

_OPENING_FENCE_RE = re.compile(r"^```\w*\s*")
_CLOSING_FENCE_RE = re.compile(r"\s*```\s*$")

UNAVAILABLE_MESSAGE = (
    "Our AI service is temporarily unavailable. Please try again in a moment."
)
REQUEST_FAILED_MESSAGE = "Failed to get response from the AI service"
EMPTY_RESPONSE_MESSAGE = "The AI service returned an empty response"
INVALID_JSON_MESSAGE = (
    "Failed to parse AI response as JSON. The AI returned invalid output."
)
NOT_AN_OBJECT_MESSAGE = "AI response is not a valid JSON object"
UNABLE_TO_PROCESS_MESSAGE = "Unable to process this question. Please try rephrasing."
UNEXPECTED_FAILURE_MESSAGE = "Pipeline failed unexpectedly"

Sleep = Callable[[float], Awaitable[Any]]


class PipelineStep(Enum):
    """Individual pipeline steps."""

    VALIDATE_INPUT = "validate_input"
    STORE_CONTEXT = "store_context"
    GENERATE = "generate"
    PARSE = "parse"
    VALIDATE_SQL = "validate_sql"
    CHART_SPEC = "chart_spec"


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the pipeline needs to know about the text generation call."""

    model: str = "gpt-4o"
    max_tokens: int = 1024
    temperature: float = 0
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 8.0
    max_question_length: int = MAX_QUESTION_LENGTH

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            model=settings.OPENAI_MODEL,
            max_tokens=settings.OPENAI_MAX_TOKENS,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
            backoff_base_seconds=settings.LLM_BACKOFF_BASE_SECONDS,
            backoff_max_seconds=settings.LLM_BACKOFF_MAX_SECONDS,
        )


class PipelineLogger:
    """Per-request logger for the query pipeline."""

    def __init__(self, store_id: str):
        self.store_id = store_id
        self.start_time = datetime.now()
        self.logs = []

    def log(self, step: PipelineStep, message: str, level: str = "info"):
        """
        Record a step message and mirror it to the module logger.
        Why: one place to see how far a question got and how long it took.
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "step": step.value,
            "message": message,
            "level": level,
            "elapsed_seconds": self.elapsed_seconds(),
        }
        self.logs.append(log_entry)

        if level == "error":
            logger.error(f"[Store {self.store_id}] {step.value}: {message}")
        elif level == "warning":
            logger.warning(f"[Store {self.store_id}] {step.value}: {message}")
        else:
            logger.info(f"[Store {self.store_id}] {step.value}: {message}")

    def elapsed_seconds(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()

    def get_logs(self) -> List[Dict[str, Any]]:
        return self.logs


def is_retryable_error(error: Optional[BaseException]) -> bool:
    """
    Classify a text generation failure as transient.

    Retryable: HTTP status 429/500/502/503, transport timeouts, resets and
    aborts. Anything with another HTTP status (400, 401, 403, ...) is final.
    """
    if error is None:
        return False

    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    if isinstance(status, int):
        return status in RETRYABLE_STATUS_CODES

    if isinstance(error, RETRYABLE_EXCEPTIONS):
        return True

    if getattr(error, "code", None) in RETRYABLE_ERROR_CODES:
        return True

    return bool(_RETRYABLE_MESSAGE_RE.search(str(error)))


def compute_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Exponential delay before retry number attempt + 1 (attempt is 0-based)."""
    return min(base_seconds * (2**attempt), max_seconds)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding ``` or ```json fence if the model added one."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE_RE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_ai_response(raw: str) -> Dict[str, Any]:
    """
    Parse the model's JSON answer.

    Returns:
        {"sql": str, "explanation": str, "chartSpec": raw value or None}

    Raises:
        AIError for invalid JSON, a non-object payload or a missing/blank field.
    """
    try:
        parsed = json.loads(strip_code_fences(raw))
    except ValueError as e:
        raise AIError(INVALID_JSON_MESSAGE) from e

    if not isinstance(parsed, dict):
        raise AIError(NOT_AN_OBJECT_MESSAGE)

    for field in ("sql", "explanation"):
        value = parsed.get(field)
        if not isinstance(value, str) or not value.strip():
            raise AIError(f'AI response missing required "{field}" field')

    return {
        "sql": parsed["sql"],
        "explanation": parsed["explanation"],
        "chartSpec": parsed.get("chartSpec"),
    }


def validate_chart_spec(raw: Any) -> Optional[ChartSpec]:
    """
    Build a ChartSpec from the model's chartSpec object, or None.
    An unusable spec is dropped, never partially kept.
    """
    if not isinstance(raw, dict):
        return None

    candidate = {key: raw.get(key) for key in ("type", "title", "dataKey", "labelKey")}
    if not all(isinstance(value, str) for value in candidate.values()):
        return None

    for optional in ("xLabel", "yLabel"):
        if isinstance(raw.get(optional), str):
            candidate[optional] = raw[optional]

    try:
        return ChartSpec.model_validate(candidate)
    except SchemaValidationError:
        return None


class AIQueryPipeline:
    """
    Converts natural language questions into validated SQL for one store.

    Collaborators are injected so the same instance serves every request:
        llm_client: anything exposing `chat.completions.create(...)` (AsyncOpenAI)
        schema_context_service: exposes `get_store_context(store_id)`
        sleep: awaited between retries, replaced by a fake clock in tests
    """

    def __init__(
        self,
        llm_client,
        schema_context_service,
        config: Optional[PipelineConfig] = None,
        sleep: Sleep = asyncio.sleep,
        prompt_builder: Callable[[StoreContext], str] = build_system_prompt,
    ):
        self.llm_client = llm_client
        self.schema_context_service = schema_context_service
        self.config = config or PipelineConfig()
        self.sleep = sleep
        self.prompt_builder = prompt_builder

    async def process_question(self, store_id: str, question: str) -> AIQueryResult:
        """
        Run the whole pipeline for one question.

        Raises:
            ValidationError: bad store id or question (never retried)
            AIError: every failure after input validation
        """
        trimmed_question = self._validate_input(store_id, question)

        pipeline_logger = PipelineLogger(store_id)
        pipeline_logger.log(
            PipelineStep.VALIDATE_INPUT,
            f"Processing question ({len(trimmed_question)} chars)",
        )

        try:
            context = await self.schema_context_service.get_store_context(store_id)
            pipeline_logger.log(PipelineStep.STORE_CONTEXT, "Store context loaded")

            system_prompt = self.prompt_builder(context)
            raw_content = await self._generate(
                system_prompt, trimmed_question, pipeline_logger
            )

            answer = parse_ai_response(raw_content)
            pipeline_logger.log(PipelineStep.PARSE, "AI response parsed")

            validation = validate_sql(answer["sql"])
            if not validation.valid:
                # Detailed errors stay in the logs; the caller gets one generic message
                pipeline_logger.log(
                    PipelineStep.VALIDATE_SQL,
                    f"SQL validation failed: {validation.errors}; "
                    f"sql preview: {answer['sql'][:200]!r}",
                    "warning",
                )
                raise AIError(UNABLE_TO_PROCESS_MESSAGE)

            chart_spec = validate_chart_spec(answer["chartSpec"])
            if answer["chartSpec"] is not None and chart_spec is None:
                pipeline_logger.log(
                    PipelineStep.CHART_SPEC, "Dropped unusable chart spec", "warning"
                )

            result = AIQueryResult(
                sql=validation.sql,
                params=[store_id],
                explanation=answer["explanation"],
                chart_spec=chart_spec,
            )

        except (ValidationError, AIError):
            raise
        except Exception as e:
            pipeline_logger.log(
                PipelineStep.GENERATE, f"Unexpected failure: {e!r}", "error"
            )
            raise AIError(UNEXPECTED_FAILURE_MESSAGE) from e

        pipeline_logger.log(
            PipelineStep.VALIDATE_SQL,
            f"Query validated successfully ({len(result.sql)} chars)",
        )
        return result

    def _validate_input(self, store_id: str, question: str) -> str:
        if not is_valid_uuid(store_id):
            raise ValidationError("Invalid storeId: must be a valid UUID")

        if not isinstance(question, str) or not question.strip():
            raise ValidationError("Question cannot be empty")

        trimmed = question.strip()
        if len(trimmed) > self.config.max_question_length:
            raise ValidationError(
                f"Question too long: {len(trimmed)} chars "
                f"(max {self.config.max_question_length})"
            )
        return trimmed

    async def _generate(
        self, system_prompt: str, question: str, pipeline_logger: PipelineLogger
    ) -> str:
        """Call the model, retrying transient failures, and return its text."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": question},
        ]
        max_retries = max(0, self.config.max_retries)

        for attempt in range(max_retries + 1):
            try:
                completion = await self.llm_client.chat.completions.create(
                    model=self.config.model,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    response_format={"type": "json_object"},
                    messages=messages,
                    timeout=self.config.timeout_seconds,
                )
                break
            except Exception as e:
                if not is_retryable_error(e):
                    pipeline_logger.log(
                        PipelineStep.GENERATE,
                        f"Text generation failed (not retryable): {e!r}",
                        "error",
                    )
                    raise AIError(REQUEST_FAILED_MESSAGE) from e

                if attempt >= max_retries:
                    pipeline_logger.log(
                        PipelineStep.GENERATE,
                        f"Giving up after {attempt + 1} attempts: {e!r}",
                        "error",
                    )
                    raise AIError(UNAVAILABLE_MESSAGE) from e

                delay = compute_backoff(
                    attempt,
                    self.config.backoff_base_seconds,
                    self.config.backoff_max_seconds,
                )
                pipeline_logger.log(
                    PipelineStep.GENERATE,
                    f"Text generation failed, retry {attempt + 1}/{max_retries} "
                    f"in {delay:.1f}s: {e!r}",
                    "warning",
                )
                await self.sleep(delay)

        return _extract_content(completion)


def _extract_content(completion) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        raise AIError(EMPTY_RESPONSE_MESSAGE)

    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise AIError(EMPTY_RESPONSE_MESSAGE)
    return content
