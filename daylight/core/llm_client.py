"""LLM provider clients used by the extraction invoker.

Both clients expose the same ``generate_content`` coroutine so the invoker does
not care which provider is configured.
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx
from google import genai
from google.genai import types
from httpx import HTTPStatusError, TimeoutException

from daylight.core.config import Settings
from daylight.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMClient(Protocol):
    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


class BaseLLMClient:
    """HTTP client for JSON LLM APIs with retry and exponential backoff."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
    ):
        """Initialize the HTTP client.

        Args:
            api_key: API key for bearer authentication
            base_url: Endpoint URL
            timeout: Per-request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        payload: Dict[str, Any],
        endpoint: str = "",
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload with retries.

        Raises:
            APIClientError: If the call fails after retries or on a non-retryable 4xx
            APITimeoutError: If every attempt timed out
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url
        request_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(url, headers=request_headers, json=payload)
                    response.raise_for_status()
                    return response.json()
                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)
                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)
                except httpx.HTTPError as e:
                    await self._handle_transport_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "status_code": status_code, "error_body": error_body[:500]},
        )

        # Client errors other than rate limiting will not succeed on retry
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body[:200]}", error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries", error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        self.logger.warning(f"API Timeout (Attempt {attempt + 1}/{self.max_retries})", extra={"url": url})
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts", error) from error

    async def _handle_transport_error(self, error: httpx.HTTPError, attempt: int, url: str):
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)},
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {error}", error) from error

    async def _wait_before_retry(self, attempt: int):
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class GeminiClient:
    """Wrapper for the Google Gemini async API."""

    def __init__(self, api_key: str, model: str, max_retries: int = 1):
        self.model = model
        self.max_retries = max(1, max_retries)
        try:
            self.client = genai.Client(api_key=api_key)
        except Exception as e:
            raise APIClientError(f"Failed to initialize Gemini client: {e}", e) from e
        LOGGER.info(f"Initialized Gemini client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured Gemini model.

        Raises:
            APIClientError: If generation fails after retries
        """
        generation_config = generation_config or {}
        config = types.GenerateContentConfig(
            temperature=generation_config.get("temperature", 0.0),
            system_instruction=system_instruction,
        )
        if "max_output_tokens" in generation_config:
            config.max_output_tokens = generation_config["max_output_tokens"]
        if "response_mime_type" in generation_config:
            config.response_mime_type = generation_config["response_mime_type"]

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
                if not response.text:
                    LOGGER.warning("Empty response from Gemini")
                    return ""
                return response.text
            except Exception as e:
                LOGGER.warning(f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    raise APIClientError(f"Gemini generation failed: {e}", e) from e

        raise APIClientError("Gemini generation failed")


class OpenRouterClient:
    """OpenRouter chat-completions client with the same interface as GeminiClient."""

    def __init__(self, api_key: str, model: str, base_url: str, timeout: float = 60, max_retries: int = 3):
        self.model = model
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured OpenRouter model.

        Raises:
            APIClientError: If the call fails or the response has no choices
        """
        generation_config = generation_config or {}
        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": generation_config.get("temperature", 0.0),
        }
        if "max_output_tokens" in generation_config:
            payload["max_tokens"] = generation_config["max_output_tokens"]
        if generation_config.get("response_mime_type") == "application/json":
            payload["response_format"] = {"type": "json_object"}

        response = await self.client.call_api(payload=payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:500]}")
            raise APIClientError("Invalid response format from OpenRouter")

        content = choices[0].get("message", {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content


def create_llm_client(settings: Settings) -> LLMClient:
    """Build the client for the configured provider.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    llm = settings.llm
    if llm.provider == "gemini":
        if not llm.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        return GeminiClient(api_key=llm.gemini_api_key, model=llm.gemini_model, max_retries=llm.max_retries)

    if llm.provider == "openrouter":
        if not llm.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is required when LLM_PROVIDER=openrouter")
        return OpenRouterClient(
            api_key=llm.openrouter_api_key,
            model=llm.openrouter_model,
            base_url=llm.openrouter_api_url,
            timeout=llm.extraction_timeout_seconds,
            max_retries=llm.max_retries,
        )

    raise ConfigurationError(f"Unsupported LLM provider: {llm.provider}")
