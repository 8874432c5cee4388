"""Model provider adapters exposing a single async ``call(prompt) -> str``."""

import asyncio
import logging
import os
from collections import deque
from typing import Iterable, Protocol, runtime_checkable

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from structured_conversion.errors import ConfigurationError, ProviderError, ProviderErrorKind
from structured_conversion.models import (
    API_KEY_ENV,
    DEFAULT_MODEL,
    Provider,
    get_provider,
    normalize_model_name,
)

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 409, 425}
_BLOCKED_FINISH_REASONS = {
    types.FinishReason.SAFETY,
    types.FinishReason.BLOCKLIST,
    types.FinishReason.PROHIBITED_CONTENT,
}


@runtime_checkable
class ModelProvider(Protocol):
    """Anything that turns a prompt into raw model text."""

    async def call(self, prompt: str) -> str: ...


def classify_status(status_code: int | None) -> ProviderErrorKind:
    """
    Classify an HTTP status code returned by a provider API.

    Args:
        status_code (int | None): Response status, or None when no response arrived.

    Returns:
        ProviderErrorKind: 429 is rate limited; timeouts, conflicts and 5xx are
            transient; other client errors are fatal.
    """
    if status_code is None:
        return ProviderErrorKind.TRANSIENT
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code in _TRANSIENT_STATUS or status_code >= 500:
        return ProviderErrorKind.TRANSIENT
    return ProviderErrorKind.FATAL


def _retry_after(headers: httpx.Headers | None) -> float | None:
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class OpenAIProvider:
    """Adapter over ``openai.AsyncOpenAI`` chat completions."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        client: openai.AsyncOpenAI | None = None,
        max_completion_tokens: int = 4096,
    ) -> None:
        self.model = normalize_model_name(model, Provider.OPENAI)
        self.client = client or openai.AsyncOpenAI(
            api_key=os.getenv(API_KEY_ENV[Provider.OPENAI])
        )
        self.max_completion_tokens = max_completion_tokens

    async def call(self, prompt: str) -> str:
        """
        Send a single user message and return the reply text.

        Args:
            prompt (str): Prompt to send.

        Returns:
            str: Text of the first choice; empty when the model returned none.

        Raises:
            ProviderError: Classified failure of the API call.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_completion_tokens=self.max_completion_tokens,
            )
        except openai.APIConnectionError as exc:
            raise ProviderError(ProviderErrorKind.TRANSIENT, str(exc)) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                classify_status(exc.status_code),
                f"OpenAI returned {exc.status_code}: {exc.message}",
                retry_after=_retry_after(exc.response.headers),
            ) from exc

        if not response.choices:
            return ""
        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise ProviderError(
                ProviderErrorKind.CONTENT_FILTERED,
                f"OpenAI filtered the response for {self.model}",
            )
        return choice.message.content or ""


class GeminiProvider:
    """Adapter over the google-genai async client."""

    def __init__(
        self,
        model: str = "models/gemini-2.5-flash",
        client: genai.Client | None = None,
        config: types.GenerateContentConfig | None = None,
    ) -> None:
        self.model = normalize_model_name(model, Provider.GEMINI)
        self.client = client or genai.Client(api_key=os.getenv(API_KEY_ENV[Provider.GEMINI]))
        self.config = config

    async def call(self, prompt: str) -> str:
        """
        Generate content for a single user turn and return its text.

        Args:
            prompt (str): Prompt to send.

        Returns:
            str: Generated text; empty when the model returned none.

        Raises:
            ProviderError: Classified failure of the API call.
        """
        contents = [
            types.Content(
                parts=[types.Part.from_text(text=prompt)],
                role="user",
            ),
        ]
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self.config,
            )
        except genai_errors.APIError as exc:
            raise ProviderError(
                classify_status(exc.code),
                f"Gemini returned {exc.code}: {exc.message}",
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(ProviderErrorKind.TRANSIENT, str(exc) or type(exc).__name__) from exc

        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason is not None:
            raise ProviderError(
                ProviderErrorKind.CONTENT_FILTERED,
                f"Gemini blocked the prompt: {feedback.block_reason}",
            )
        if response.candidates:
            finish_reason = response.candidates[0].finish_reason
            if finish_reason in _BLOCKED_FINISH_REASONS:
                raise ProviderError(
                    ProviderErrorKind.CONTENT_FILTERED,
                    f"Gemini stopped generation: {finish_reason}",
                )
        return response.text or ""


class ScriptedProvider:
    """
    Deterministic provider that replays a script of replies.

    Each script entry is either the raw text to return or an exception to
    raise. Prompts are recorded in ``prompts`` in call order.
    """

    def __init__(
        self,
        script: Iterable[str | BaseException],
        delay: float = 0.0,
    ) -> None:
        self._script = deque(script)
        self.delay = delay
        self.prompts: list[str] = []

    @property
    def remaining(self) -> int:
        return len(self._script)

    async def call(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._script:
            raise ProviderError(ProviderErrorKind.FATAL, "Scripted provider has no replies left")
        reply = self._script.popleft()
        if isinstance(reply, BaseException):
            raise reply
        return reply


def create_provider(model: str = DEFAULT_MODEL) -> ModelProvider:
    """
    Build the adapter serving a model, with API keys from the environment.

    Args:
        model (str): Model name, e.g. ``gpt-4o-mini`` or ``gemini-2.5-flash``.

    Returns:
        ModelProvider: OpenAI or Gemini adapter.

    Raises:
        ConfigurationError: If the provider's API key is not set.
    """
    provider = get_provider(model)
    key_name = API_KEY_ENV[provider]
    if not os.getenv(key_name):
        raise ConfigurationError(f"{key_name} is not set; cannot call {model}")
    logger.debug("Using %s provider for %s", provider, model)
    if provider == Provider.GEMINI:
        return GeminiProvider(model=model)
    return OpenAIProvider(model=model)
