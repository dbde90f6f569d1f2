from openai import AsyncOpenAI

from app.core.config import Settings


def create_llm_client(settings: Settings) -> AsyncOpenAI:
    """
    Chat completion client used by the query pipeline.

    The SDK's own retries are disabled: AIQueryPipeline decides what is
    retryable and how long to back off.
    """
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )
