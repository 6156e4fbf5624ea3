"""
Language Model Clients

One async `complete(system_prompt, user_prompt, max_tokens) -> str` contract
over Ollama (local, via httpx), Anthropic and OpenAI. Every response is
untrusted text; callers pass it through summary.output_parser.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from .config import settings
from .exceptions import ProviderError

logger = logging.getLogger(__name__)


class LanguageModel(ABC):
    """Abstract text-completion capability."""

    name: str = "base"

    @abstractmethod
    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        pass

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        """
        Run one completion.

        Raises:
            ProviderError: on transport errors, API errors or empty output
        """
        start_time = time.time()
        try:
            text = await self._complete(system_prompt, user_prompt, max_tokens)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e

        if not text or not text.strip():
            raise ProviderError(f"{self.name} returned an empty response", provider=self.name)

        logger.debug(
            f"{self.name} completion: {len(user_prompt)} prompt chars -> "
            f"{len(text)} chars in {time.time() - start_time:.1f}s"
        )
        return text


class OllamaModel(LanguageModel):
    """Local models through Ollama's /api/generate endpoint."""

    name = "ollama"

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model or settings.ollama_model
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self._client = client

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(f"{self.base_url}/api/generate", json=payload)

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        payload = {
            "model": self.model,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        if self._client is not None:
            response = await self._post(self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=settings.llm_timeout_seconds) as client:
                response = await self._post(client, payload)

        if response.status_code >= 400:
            raise ProviderError(
                f"Ollama error {response.status_code}: {response.text[:200]}",
                provider=self.name,
                status_code=response.status_code,
            )
        return response.json().get("response", "")


class AnthropicModel(LanguageModel):
    """Claude models through the Anthropic messages API."""

    name = "anthropic"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None, client=None):
        self.model = model or settings.anthropic_model
        if client is None:
            from anthropic import AsyncAnthropic

            client = AsyncAnthropic(
                api_key=api_key or settings.anthropic_api_key or None,
                timeout=settings.llm_timeout_seconds,
            )
        self.client = client

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        # Concatenate text blocks; other block types are ignored
        return "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )


class OpenAIModel(LanguageModel):
    """OpenAI chat completion models."""

    name = "openai"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None, client=None):
        self.model = model or settings.openai_model
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(
                api_key=api_key or settings.openai_api_key or None,
                timeout=settings.llm_timeout_seconds,
            )
        self.client = client

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def create_language_model(provider: Optional[str] = None) -> LanguageModel:
    """Create the configured language model client."""
    provider = (provider or settings.llm_provider).lower()
    logger.info(f"Using language model provider: {provider}")

    if provider == "ollama":
        return OllamaModel()
    elif provider == "anthropic":
        return AnthropicModel()
    elif provider == "openai":
        return OpenAIModel()
    else:
        raise ValueError(f"Unknown language model provider: {provider}")
