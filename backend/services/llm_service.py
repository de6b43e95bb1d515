from typing import AsyncGenerator, Optional
from enum import Enum
import httpx
import json
import logging

from services.errors import GenerationError

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


class LLMService:
    """LLM-agnostic service for text generation"""

    def __init__(
        self,
        provider: str,
        api_key: str = "",
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.provider = provider.value if isinstance(provider, LLMProvider) else provider
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate a complete response for a single prompt.
        Any transport, HTTP or timeout failure is raised as GenerationError.
        """
        chunks = []
        try:
            async for chunk in self.generate_stream(prompt, system_prompt=system_prompt):
                chunks.append(chunk)
        except GenerationError:
            raise
        except httpx.TimeoutException as e:
            raise GenerationError(f"{self.provider} request timed out") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"{self.provider} request failed: {e}") from e

        response = "".join(chunks)
        if not response.strip():
            raise GenerationError(f"{self.provider} returned an empty response")
        logger.debug(f"Generated {len(response)} chars with {self.provider}")
        return response

    async def generate_stream(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Stream text from the configured provider"""
        if self.provider == LLMProvider.OPENAI.value:
            stream = self._openai_stream(system_prompt, user_prompt)
        elif self.provider == LLMProvider.ANTHROPIC.value:
            stream = self._anthropic_stream(system_prompt, user_prompt)
        elif self.provider == LLMProvider.LOCAL.value:
            stream = self._local_stream(system_prompt, user_prompt)
        else:
            raise GenerationError(f"Unsupported LLM provider: {self.provider}")

        async for chunk in stream:
            yield chunk

    def _chat_messages(self, system_prompt: Optional[str], user_prompt: str) -> list[dict]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def _openai_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str
    ) -> AsyncGenerator[str, None]:
        """Stream from OpenAI API"""
        request_body = {
            "model": self.model_name or "gpt-4o",
            "messages": self._chat_messages(system_prompt, user_prompt),
            "stream": True,
            "max_tokens": 4096
        }
        if self.temperature is not None:
            request_body["temperature"] = self.temperature

        async for chunk in self._openai_compatible_stream(
            "https://api.openai.com/v1/chat/completions",
            {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            request_body,
            "OpenAI"
        ):
            yield chunk

    async def _local_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str
    ) -> AsyncGenerator[str, None]:
        """Stream from local/custom HTTP endpoint (OpenAI-compatible)"""
        if not self.base_url:
            raise GenerationError("Local provider requires base_url to be configured")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        request_body = {
            "model": self.model_name or "default",
            "messages": self._chat_messages(system_prompt, user_prompt),
            "stream": True,
            "max_tokens": 4096
        }
        if self.temperature is not None:
            request_body["temperature"] = self.temperature

        async for chunk in self._openai_compatible_stream(
            f"{self.base_url.rstrip('/')}/v1/chat/completions",
            headers,
            request_body,
            "Local"
        ):
            yield chunk

    async def _openai_compatible_stream(
        self,
        url: str,
        headers: dict,
        request_body: dict,
        label: str
    ) -> AsyncGenerator[str, None]:
        async with self._client() as client:
            async with client.stream("POST", url, headers=headers, json=request_body) as response:
                if response.status_code != 200:
                    error_text = await response.aread()
                    raise GenerationError(f"{label} API error ({response.status_code}): {error_text.decode()}")

                async for line in response.aiter_lines():
                    if line.startswith("data: "):
                        data = line[6:]
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                            # Usage and content-filter chunks carry no choices
                            choices = chunk.get("choices") or []
                            if not choices:
                                continue
                            content = (choices[0].get("delta") or {}).get("content", "")
                            if content:
                                yield content
                        except json.JSONDecodeError:
                            continue

    async def _anthropic_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str
    ) -> AsyncGenerator[str, None]:
        """Stream from Anthropic API"""
        request_body = {
            "model": self.model_name or "claude-sonnet-4-20250514",
            "max_tokens": 4096,
            "messages": [{"role": "user", "content": user_prompt}],
            "stream": True
        }
        if system_prompt:
            request_body["system"] = system_prompt
        if self.temperature is not None:
            request_body["temperature"] = self.temperature

        async with self._client() as client:
            async with client.stream(
                "POST",
                "https://api.anthropic.com/v1/messages",
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                    "Content-Type": "application/json"
                },
                json=request_body
            ) as response:
                if response.status_code != 200:
                    error_text = await response.aread()
                    raise GenerationError(f"Anthropic API error ({response.status_code}): {error_text.decode()}")

                async for line in response.aiter_lines():
                    if line.startswith("data: "):
                        data = line[6:]
                        try:
                            chunk = json.loads(data)
                            if chunk.get("type") == "content_block_delta":
                                content = chunk.get("delta", {}).get("text", "")
                                if content:
                                    yield content
                        except json.JSONDecodeError:
                            continue
