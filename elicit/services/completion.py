"""
Completion service: the only place that talks to the OpenAI API.

Three call shapes are offered (free text, streamed fragments, and
schema-shaped objects parsed into pydantic models). Every failure is
translated into ServiceUnavailable or InvalidOutput so that callers can
take their deterministic fallback path. Calls are attempted exactly once.
"""
import os
from typing import Dict, Iterator, List, Optional, Type, TypeVar

import openai
from openai import OpenAI
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.utils.logger import get_logger

logger = get_logger("services.completion")

T = TypeVar("T", bound=BaseModel)


def _build_messages(prompt: str, system: Optional[str]) -> List[Dict[str, str]]:
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


class CompletionService:
    """Thin wrapper over the chat completions API with single-attempt semantics."""

    def __init__(self, config: Optional[ElicitConfig] = None, client: Optional[OpenAI] = None):
        self.config = config if config is not None else get_config()
        self._client = client
        if self._client is None and os.environ.get("OPENAI_API_KEY"):
            self._client = OpenAI(timeout=self.config.request_timeout, max_retries=0)
        if self._client is None:
            logger.warning("OPENAI_API_KEY not set; completion service disabled, fallbacks will be used")

    def is_available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> OpenAI:
        if self._client is None:
            raise ServiceUnavailable("Completion service is not configured")
        return self._client

    def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the model's free-text reply."""
        client = self._require_client()
        try:
            response = client.chat.completions.create(
                model=model or self.config.chat_model,
                messages=_build_messages(prompt, system),
                temperature=self.config.chat_temperature if temperature is None else temperature,
                max_tokens=self.config.chat_max_tokens,
            )
        except openai.OpenAIError as e:
            raise ServiceUnavailable(f"Completion request failed: {e}") from e

        if not response.choices:
            raise InvalidOutput("Completion returned no choices")
        return response.choices[0].message.content or ""

    def complete_stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Yield text fragments as they arrive."""
        client = self._require_client()
        try:
            stream = client.chat.completions.create(
                model=model or self.config.chat_model,
                messages=_build_messages(prompt, system),
                temperature=self.config.chat_temperature if temperature is None else temperature,
                max_tokens=self.config.chat_max_tokens,
                stream=True,
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except openai.OpenAIError as e:
            raise ServiceUnavailable(f"Streaming completion failed: {e}") from e

    def complete_structured(
        self,
        prompt: str,
        schema: Type[T],
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> T:
        """
        Return a validated instance of ``schema``.

        Raises:
            ServiceUnavailable: transport, auth, rate limit or timeout failure
            InvalidOutput: refusal, truncation, or a response that does not validate
        """
        client = self._require_client()
        try:
            response = client.chat.completions.parse(
                model=model or self.config.structured_model,
                messages=_build_messages(prompt, system),
                response_format=schema,
                temperature=self.config.structured_temperature if temperature is None else temperature,
                max_tokens=self.config.structured_max_tokens,
            )
        except (openai.LengthFinishReasonError, openai.ContentFilterFinishReasonError, PydanticValidationError) as e:
            raise InvalidOutput(f"Structured response rejected: {e}") from e
        except openai.OpenAIError as e:
            raise ServiceUnavailable(f"Structured completion failed: {e}") from e

        if not response.choices:
            raise InvalidOutput("Structured completion returned no choices")
        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise InvalidOutput(f"Model refused: {message.refusal}")
        if message.parsed is None:
            raise InvalidOutput(f"No parsed {schema.__name__} in response")
        return message.parsed


# Global instance
_completion_service: Optional[CompletionService] = None


def get_completion_service() -> CompletionService:
    """Get the process-wide completion service."""
    global _completion_service
    if _completion_service is None:
        _completion_service = CompletionService()
    return _completion_service


def set_completion_service(service: CompletionService) -> None:
    global _completion_service
    _completion_service = service
