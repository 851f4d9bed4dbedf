"""Text-generation provider adapters.

Two interchangeable backends sit behind ``TextGenerator.generate``:
- openai: chat completions at ``{base_url}/chat/completions``
- google: Gemini ``{base_url}/models/{model}:generateContent``

Raw payloads are validated into a tagged union before any text is read.
Every failure (transport, non-2xx, malformed payload) becomes ``None``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated, Any, Literal

import httpx
import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from worldcommits.config import ProviderConfig
from worldcommits.rewrite.prompt import SYSTEM_INSTRUCTION

logger = structlog.get_logger()

REWRITE_TEMPERATURE = 0.4
REWRITE_MAX_OUTPUT_TOKENS = 180


# ---------------------------------------------------------------------------
# Response variants
# ---------------------------------------------------------------------------


class OpenAIMessage(BaseModel):
    content: str | None = None


class OpenAIChoice(BaseModel):
    message: OpenAIMessage


class OpenAIChatResponse(BaseModel):
    provider: Literal["openai"]
    choices: list[OpenAIChoice] = Field(min_length=1)

    def text(self) -> str:
        return self.choices[0].message.content or ""


class GeminiPart(BaseModel):
    text: str | None = None


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(BaseModel):
    content: GeminiContent


class GeminiGenerateResponse(BaseModel):
    provider: Literal["google"]
    candidates: list[GeminiCandidate] = Field(min_length=1)

    def text(self) -> str:
        return " ".join(part.text or "" for part in self.candidates[0].content.parts)


ProviderResponse = Annotated[OpenAIChatResponse | GeminiGenerateResponse, Field(discriminator="provider")]
_response_adapter: TypeAdapter[OpenAIChatResponse | GeminiGenerateResponse] = TypeAdapter(ProviderResponse)


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class TextGenerator(ABC):
    """Single-capability provider adapter: prompt in, text or None out."""

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=self._headers(),
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return self.config.name

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    @abstractmethod
    async def _send(self, prompt: str) -> httpx.Response: ...

    async def generate(self, prompt: str) -> str | None:
        """Send ``prompt`` and return the model's raw text, or None on any failure."""
        try:
            response = await self._send(prompt)
            response.raise_for_status()
            data: Any = response.json()
            if not isinstance(data, dict):
                logger.warning("rewrite_provider_bad_payload", provider=self.provider_name)
                return None
            payload = _response_adapter.validate_python({**data, "provider": self.provider_name})
        except httpx.HTTPStatusError as e:
            logger.warning(
                "rewrite_provider_http_error",
                provider=self.provider_name,
                status_code=e.response.status_code,
            )
            return None
        except httpx.HTTPError as e:
            logger.warning("rewrite_provider_unreachable", provider=self.provider_name, error=str(e))
            return None
        except (ValidationError, ValueError) as e:
            logger.warning("rewrite_provider_bad_payload", provider=self.provider_name, error=str(e))
            return None
        return payload.text()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class OpenAIGenerator(TextGenerator):
    """OpenAI chat completions adapter."""

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _send(self, prompt: str) -> httpx.Response:
        return await self._client.post(
            "/chat/completions",
            json={
                "model": self.config.model,
                "temperature": REWRITE_TEMPERATURE,
                "max_tokens": REWRITE_MAX_OUTPUT_TOKENS,
                "messages": [
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": prompt},
                ],
            },
        )


class GeminiGenerator(TextGenerator):
    """Google Gemini generateContent adapter."""

    def _headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self.config.api_key,
            "Content-Type": "application/json",
        }

    async def _send(self, prompt: str) -> httpx.Response:
        return await self._client.post(
            f"/models/{self.config.model}:generateContent",
            json={
                "generationConfig": {
                    "temperature": REWRITE_TEMPERATURE,
                    "maxOutputTokens": REWRITE_MAX_OUTPUT_TOKENS,
                },
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            },
        )


def build_generator(config: ProviderConfig, timeout: float = 30.0) -> TextGenerator:
    """Create the adapter for a configured provider."""
    if config.name == "openai":
        return OpenAIGenerator(config, timeout=timeout)
    if config.name == "google":
        return GeminiGenerator(config, timeout=timeout)
    raise ValueError(f"Unknown provider: {config.name}")
