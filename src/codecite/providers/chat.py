"""Chat provider with JSON structured output."""

import logging
import re

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from codecite.errors import ProviderError, StructuredOutputError
from codecite.providers.base import SchemaT

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def strip_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if present."""
    stripped = text.strip()
    match = FENCE_PATTERN.match(stripped)
    return match.group(1) if match else stripped


class OpenAIChat:
    """Chat completions from OpenAI or any OpenAI-compatible server."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        temperature: float = 0.0,
    ):
        self._client = OpenAI(
            api_key=api_key or "unused",
            base_url=base_url,
            timeout=timeout,
            max_retries=1,
        )
        self._model = model
        self._temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model

    def generate_structured(self, system: str, user: str, schema: type[SchemaT]) -> SchemaT:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                response_format={"type": "json_object"},
                temperature=self._temperature,
            )
        except OpenAIError as e:
            raise ProviderError(f"Chat request failed ({self._model}): {e}") from e

        raw = ""
        if response.choices:
            raw = response.choices[0].message.content or ""
        try:
            return schema.model_validate_json(strip_fences(raw))
        except ValidationError as e:
            logger.warning("Chat reply did not match %s: %s", schema.__name__, e.error_count())
            raise StructuredOutputError(f"Invalid structured output: {e}", raw_text=raw) from e
