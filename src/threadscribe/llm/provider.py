"""LLM provider configuration."""

from langchain_openai import ChatOpenAI

from threadscribe.config import get_settings
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)


def get_llm_for_extraction() -> ChatOpenAI:
    """Get LLM instance configured for image text extraction.

    Temperature is zero so the same image reads the same way twice, and the
    output budget is large enough for full-page documents.

    Returns:
        ChatOpenAI instance configured for vision processing.
    """
    settings = get_settings()

    logger.debug("initializing_extraction_llm", model=settings.llm_model)

    return ChatOpenAI(
        model=settings.llm_model,
        temperature=0.0,
        api_key=settings.openai_api_key,
        max_tokens=settings.extraction_max_tokens,
        max_retries=2,
    )
