"""
Dependencies module for FastAPI application
Provides database access, LLM integration and the shared ingestion engine
"""
from fastapi import Request
from config import settings
import httpx
import logging
import time
from typing import Optional

from utils.debug import Loggers, log_ai_request
from utils.errors import LLMServiceError, ServiceUnavailableError
from database.repositories.shopping_list_repository import shopping_list_repository

logger = logging.getLogger(__name__)


# LLM Helpers

async def call_openai(
    client: httpx.AsyncClient,
    system_prompt: str,
    user_prompt: str,
    timeout: float
) -> str:
    """Call OpenAI through the official SDK, sharing the app's HTTP client"""
    start_time = time.time()
    model = settings.openai_model
    Loggers.ai.debug("Calling OpenAI API", model=model)

    api_key = settings.openai_api_key
    if not api_key:
        Loggers.ai.error("OpenAI API key not configured")
        raise LLMServiceError("openai", "API key not configured")

    try:
        from openai import AsyncOpenAI

        openai_client = AsyncOpenAI(api_key=api_key, http_client=client, timeout=timeout)

        response = await openai_client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            temperature=0.2,
            max_tokens=1000
        )

        duration_ms = (time.time() - start_time) * 1000
        usage = getattr(response, 'usage', None)
        log_ai_request(
            "openai", model, "chat_completion",
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            duration_ms=duration_ms
        )

        return response.choices[0].message.content or ""
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        log_ai_request("openai", model, "chat_completion", duration_ms=duration_ms, error=str(e))
        raise LLMServiceError("openai", str(e)) from e


async def call_groq(
    client: httpx.AsyncClient,
    system_prompt: str,
    user_prompt: str,
    timeout: float
) -> str:
    """Call Groq's OpenAI-compatible endpoint"""
    start_time = time.time()
    model = settings.groq_model
    Loggers.ai.debug("Calling Groq API", model=model)

    api_key = settings.groq_api_key
    if not api_key:
        Loggers.ai.error("Groq API key not configured")
        raise LLMServiceError("groq", "API key not configured")

    try:
        response = await client.post(
            "https://api.groq.com/openai/v1/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json"
            },
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                "temperature": 0.2,
                "max_tokens": 1000
            },
            timeout=timeout
        )
    except httpx.HTTPError as e:
        duration_ms = (time.time() - start_time) * 1000
        log_ai_request("groq", model, "chat_completion", duration_ms=duration_ms, error=type(e).__name__)
        raise LLMServiceError("groq", f"{type(e).__name__}: {e}") from e

    duration_ms = (time.time() - start_time) * 1000

    if response.status_code != 200:
        log_ai_request("groq", model, "chat_completion", duration_ms=duration_ms,
                       error=f"HTTP {response.status_code}: {response.text[:200]}")
        raise LLMServiceError("groq", f"HTTP {response.status_code}")

    try:
        result = response.json()
        content = result["choices"][0]["message"]["content"]
        usage = result.get("usage") or {}
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        log_ai_request("groq", model, "chat_completion", duration_ms=duration_ms,
                       error="Unexpected response shape")
        raise LLMServiceError("groq", "Unexpected response shape") from e

    log_ai_request(
        "groq", model, "chat_completion",
        prompt_tokens=usage.get("prompt_tokens"),
        completion_tokens=usage.get("completion_tokens"),
        duration_ms=duration_ms
    )
    return content


async def call_anthropic(
    client: httpx.AsyncClient,
    system_prompt: str,
    user_prompt: str,
    timeout: float
) -> str:
    """Call Anthropic Claude API"""
    start_time = time.time()
    model = settings.anthropic_model
    Loggers.ai.debug("Calling Anthropic API", model=model)

    api_key = settings.anthropic_api_key
    if not api_key:
        Loggers.ai.error("Anthropic API key not configured")
        raise LLMServiceError("anthropic", "API key not configured")

    try:
        response = await client.post(
            "https://api.anthropic.com/v1/messages",
            headers={
                "x-api-key": api_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json"
            },
            json={
                "model": model,
                "max_tokens": 1000,
                "system": system_prompt,
                "messages": [
                    {"role": "user", "content": user_prompt}
                ]
            },
            timeout=timeout
        )
    except httpx.HTTPError as e:
        duration_ms = (time.time() - start_time) * 1000
        log_ai_request("anthropic", model, "messages", duration_ms=duration_ms, error=type(e).__name__)
        raise LLMServiceError("anthropic", f"{type(e).__name__}: {e}") from e

    duration_ms = (time.time() - start_time) * 1000

    if response.status_code != 200:
        log_ai_request("anthropic", model, "messages", duration_ms=duration_ms,
                       error=f"HTTP {response.status_code}: {response.text[:200]}")
        raise LLMServiceError("anthropic", f"HTTP {response.status_code}")

    try:
        result = response.json()
        # Extract text from content blocks
        content = result.get("content", [])
        text_parts = [block.get("text", "") for block in content if block.get("type") == "text"]
        usage = result.get("usage") or {}
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        log_ai_request("anthropic", model, "messages", duration_ms=duration_ms,
                       error="Unexpected response shape")
        raise LLMServiceError("anthropic", "Unexpected response shape") from e

    log_ai_request(
        "anthropic", model, "messages",
        prompt_tokens=usage.get("input_tokens"),
        completion_tokens=usage.get("output_tokens"),
        duration_ms=duration_ms
    )

    return "".join(text_parts)


async def call_ollama(
    client: httpx.AsyncClient,
    system_prompt: str,
    user_prompt: str,
    timeout: float
) -> str:
    """Call a local Ollama server"""
    start_time = time.time()
    url = settings.ollama_url
    model = settings.ollama_model
    Loggers.ai.debug("Calling Ollama API", model=model, url=url)

    try:
        response = await client.post(
            f"{url}/api/generate",
            json={
                "model": model,
                "prompt": f"{system_prompt}\n\nUser: {user_prompt}\n\nAssistant:",
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": 0.2,
                    "num_predict": 1000,
                }
            },
            timeout=timeout
        )
    except httpx.HTTPError as e:
        duration_ms = (time.time() - start_time) * 1000
        log_ai_request("ollama", model, "generate", duration_ms=duration_ms, error=type(e).__name__)
        raise LLMServiceError("ollama", f"{type(e).__name__}: {e}") from e

    duration_ms = (time.time() - start_time) * 1000

    if response.status_code != 200:
        log_ai_request("ollama", model, "generate", duration_ms=duration_ms,
                       error=f"HTTP {response.status_code}")
        raise LLMServiceError("ollama", f"HTTP {response.status_code}")

    try:
        result = response.json()
        text = result.get("response", "")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        log_ai_request("ollama", model, "generate", duration_ms=duration_ms,
                       error="Unexpected response shape")
        raise LLMServiceError("ollama", "Unexpected response shape") from e

    log_ai_request(
        "ollama", model, "generate",
        prompt_tokens=result.get("prompt_eval_count"),
        completion_tokens=result.get("eval_count"),
        duration_ms=duration_ms
    )
    return text


PROVIDERS = {
    "ollama": call_ollama,
    "openai": call_openai,
    "anthropic": call_anthropic,
    "groq": call_groq,
}


async def call_llm(
    client: httpx.AsyncClient,
    system_prompt: str,
    user_prompt: str,
    timeout: Optional[float] = None
) -> str:
    """Call the configured LLM provider. Raises LLMServiceError on any failure."""
    provider = settings.llm_provider
    handler = PROVIDERS.get(provider)
    if handler is None:
        raise LLMServiceError(provider, "Unknown LLM provider")
    text = await handler(client, system_prompt, user_prompt, timeout or settings.normalization_timeout)
    if text is None:
        return ""
    if not isinstance(text, str):
        raise LLMServiceError(provider, "Unexpected response shape")
    return text


def clean_llm_json(text: str) -> str:
    """Clean markdown code blocks from LLM response"""
    text = text.strip()
    if text.startswith("```"):
        # Find first newline to skip language identifier (e.g. ```json)
        newline_index = text.find("\n")
        if newline_index != -1:
            text = text[newline_index+1:]
        # Remove closing backticks
        if text.endswith("```"):
            text = text[:-3]
    return text.strip()


# Request-scoped accessors

def get_engine(request: Request):
    """Return the process-wide ingestion engine created at startup"""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ServiceUnavailableError("Ingestion engine")
    return engine


def get_list_store(request: Request):
    store = getattr(request.app.state, "list_store", None)
    if store is None:
        raise ServiceUnavailableError("Shopping list storage")
    return store


def get_smart_add_parser(request: Request):
    parser = getattr(request.app.state, "smart_add_parser", None)
    if parser is None:
        raise ServiceUnavailableError("Smart add")
    return parser


__all__ = [
    # LLM
    'call_llm',
    'clean_llm_json',

    # Repositories
    'shopping_list_repository',

    # Services
    'get_engine',
    'get_list_store',
    'get_smart_add_parser',
]
