"""Bounded, schema-checked call to the extraction model."""

import asyncio
import json
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from daylight.core.exceptions import APIClientError, APITimeoutError, ExtractionFailedError
from daylight.core.llm_client import LLMClient
from daylight.schemas.extraction import (
    EXTRACTION_SCHEMA_VERSION,
    ExtractionContext,
    ExtractionPayload,
    ExtractionResult,
)
from daylight.utils.json_parser import parse_json_object
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


def schema_instruction() -> str:
    """Output contract appended to every extraction prompt."""
    schema = json.dumps(ExtractionResult.model_json_schema(), separators=(",", ":"), sort_keys=True)
    return (
        f"OUTPUT FORMAT (schema version {EXTRACTION_SCHEMA_VERSION}):\n"
        "Respond with a single JSON object that validates against this JSON Schema. "
        "Do not add keys, comments or prose. Use null for unknown values and [] for empty lists.\n"
        f"{schema}"
    )


class ExtractionInvoker:
    """Calls the LLM and returns a validated ``ExtractionPayload``.

    Timeouts, provider failures and schema violations are all raised as
    ``ExtractionFailedError`` with a ``reason`` telling them apart.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = 0.0,
    ):
        self.llm_client = llm_client
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature

    async def extract(self, context: ExtractionContext) -> ExtractionPayload:
        """Run extraction for an assembled context.

        Args:
            context: Output of the context builder

        Returns:
            ExtractionPayload: Validated events, action items and metadata

        Raises:
            ExtractionFailedError: On timeout, upstream failure or invalid output
        """
        raw = await self._call_model(context)
        return self.validate_response(raw)

    async def _call_model(self, context: ExtractionContext) -> str:
        system_instruction = f"{context.system_prompt}\n\n{schema_instruction()}"
        try:
            return await asyncio.wait_for(
                self.llm_client.generate_content(
                    contents=context.entry_text,
                    system_instruction=system_instruction,
                    generation_config={
                        "temperature": self.temperature,
                        "response_mime_type": "application/json",
                    },
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            LOGGER.warning(f"Extraction call exceeded {self.timeout_seconds}s")
            raise ExtractionFailedError(
                f"Extraction timed out after {self.timeout_seconds:g} seconds",
                reason=ExtractionFailedError.TIMEOUT,
                original_error=e,
            ) from e
        except APITimeoutError as e:
            LOGGER.warning(f"Extraction service timed out: {e}")
            raise ExtractionFailedError(
                f"Extraction timed out: {e.message}",
                reason=ExtractionFailedError.TIMEOUT,
                original_error=e,
            ) from e
        except APIClientError as e:
            LOGGER.warning(f"Extraction service call failed: {e}")
            raise ExtractionFailedError(
                f"Extraction service unavailable: {e.message}",
                reason=ExtractionFailedError.UNAVAILABLE,
                original_error=e,
            ) from e

    @staticmethod
    def validate_response(raw: Optional[str]) -> ExtractionPayload:
        """Parse and validate raw model output against the extraction schema.

        Raises:
            ExtractionFailedError: With reason ``schema_violation``
        """
        try:
            data = parse_json_object(raw or "")
        except ValueError as e:
            raise ExtractionFailedError(
                f"Extraction returned malformed output: {e}",
                reason=ExtractionFailedError.SCHEMA_VIOLATION,
                original_error=e,
            ) from e

        try:
            result = ExtractionResult.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            LOGGER.warning(
                "Extraction output failed schema validation",
                extra={"error_count": len(errors), "errors": errors[:10]},
            )
            raise ExtractionFailedError(
                f"Extraction output did not match the schema ({len(errors)} error(s)): {errors[0]}",
                reason=ExtractionFailedError.SCHEMA_VIOLATION,
                errors=errors,
                original_error=e,
            ) from e

        return result.extraction
