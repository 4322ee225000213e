"""
LLM Client Infrastructure
==========================

Wrapper for OpenAI-compatible LLM servers providing a clean interface for
LLM operations.

Local model servers (llama.cpp, vLLM, Ollama) expose the OpenAI chat
completion API, so one client covers hosted and on-box models.
"""

import json
import time
from typing import List, Optional
from abc import ABC, abstractmethod

from openai import AsyncOpenAI

from multisig_triage.core import LLMException, ConfigurationException


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Following Interface Segregation Principle - only methods
    actually needed by the application are defined.
    """

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 200,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""

    async def close(self) -> None:
        """Release held connections."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI SDK client for any OpenAI-compatible endpoint.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(
        self,
        model: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        if not model:
            raise ConfigurationException("LLM model not configured")

        # Local servers ignore the key but the SDK insists on one
        self._client = AsyncOpenAI(api_key=api_key or "not-needed", base_url=base_url)
        self._model = model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 200,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type recorded with the result

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}", {"operation": operation}) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0

        return ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms
        )

    async def close(self) -> None:
        await self._client.close()


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for testing.

    Returns predictable responses without calling external APIs.
    """

    def __init__(self, adjustment: float = 0.05):
        self.adjustment = adjustment
        self.calls: List[List[dict]] = []

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 200,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Return a canned urgency adjustment."""
        self.calls.append(messages)

        mock_response = {
            "adjustment": self.adjustment,
            "summary": "Mock: multisig transfer awaiting co-signer approval.",
            "tags": ["mock", "multisig", "needs-review"]
        }
        content = f"```json\n{json.dumps(mock_response, indent=2)}\n```"

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=1
        )


__all__ = [
    "ChatCompletionResult",
    "ILLMClient",
    "OpenAILLMClient",
    "MockLLMClient",
]
