"""Reasoning service clients for merchant inference"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import openai

from merchant_discovery.config import settings
from merchant_discovery.domain.exceptions import ReasoningServiceError

logger = logging.getLogger(__name__)


class ReasoningClient(ABC):
    """Abstract base for reasoning service clients"""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the raw response text.

        Raises:
            ReasoningServiceError: When the service is unavailable or fails
        """


class ChatCompletionReasoningClient(ReasoningClient):
    """
    Client for OpenAI-compatible chat completion APIs.

    The default base URL targets Anthropic's compatibility endpoint so the
    configured Claude model is reachable through the same SDK. Concurrent
    calls are bounded by a semaphore; the SDK client owns timeouts and
    retries on transient failures.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.api_key = api_key or settings.reasoning_api_key
        self.base_url = base_url or settings.reasoning_base_url
        self.model = model or settings.reasoning_model
        self.max_tokens = max_tokens or settings.reasoning_max_tokens
        self.timeout = timeout or settings.reasoning_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.reasoning_max_retries
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.reasoning_max_concurrency)
        self._client = client

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ReasoningServiceError("REASONING_API_KEY is not configured")
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        client = self._get_client()
        async with self._semaphore:
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self.max_tokens,
                    temperature=0,
                )
            except openai.APIStatusError as e:
                logger.warning("Reasoning service returned an error status", extra={"status_code": e.status_code})
                raise ReasoningServiceError(f"Reasoning service error: {e.status_code}") from e
            except openai.APIError as e:
                raise ReasoningServiceError(f"Reasoning service unavailable: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ReasoningServiceError("Reasoning service returned no text content")
        return text
