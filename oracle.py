"""Text-generation boundary: one request in, raw text plus a stop reason out."""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from openai import AsyncOpenAI

from config import DEFAULT_CONFIG, ExtractionConfig

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    COMPLETE = "complete"
    LENGTH = "length"
    OTHER = "other"


@dataclass(frozen=True)
class OracleReply:
    text: str
    stop_reason: StopReason = StopReason.COMPLETE

    @property
    def truncated(self) -> bool:
        return self.stop_reason == StopReason.LENGTH


class Oracle(Protocol):
    async def generate(
        self,
        system_prompt: Optional[str],
        user_message: str,
        max_output_tokens: int,
    ) -> OracleReply:
        ...


class ClientManager:
    _async_client: Optional[AsyncOpenAI] = None

    @classmethod
    def get_async_client(cls) -> AsyncOpenAI:
        """Get or create the shared async OpenAI client."""
        if cls._async_client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable not set")
            cls._async_client = AsyncOpenAI(
                api_key=api_key,
                timeout=600.0,
                max_retries=2,  # Built-in retries
            )
        return cls._async_client

    @classmethod
    def reset(cls) -> None:
        """Drop the shared client (useful for testing or API key rotation)."""
        cls._async_client = None


_FINISH_REASONS = {
    "stop": StopReason.COMPLETE,
    "length": StopReason.LENGTH,
}


class OpenAIOracle:
    """Oracle backed by the OpenAI chat completions API."""

    def __init__(self, config: ExtractionConfig = DEFAULT_CONFIG, client: Optional[AsyncOpenAI] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = ClientManager.get_async_client()
        return self._client

    async def generate(
        self,
        system_prompt: Optional[str],
        user_message: str,
        max_output_tokens: int,
    ) -> OracleReply:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        completion = await self.client.chat.completions.create(
            model=self.config.model.name,
            messages=messages,
            max_completion_tokens=self.config.output_ceiling(max_output_tokens),
        )

        if not completion.choices:
            return OracleReply(text="", stop_reason=StopReason.OTHER)

        choice = completion.choices[0]
        stop_reason = _FINISH_REASONS.get(choice.finish_reason, StopReason.OTHER)
        if stop_reason == StopReason.OTHER:
            logger.warning("Unusual finish_reason: %s", choice.finish_reason)

        return OracleReply(text=choice.message.content or "", stop_reason=stop_reason)


async def call_oracle(
    oracle: Oracle,
    system_prompt: Optional[str],
    user_message: str,
    max_output_tokens: int,
    timeout: Optional[float],
    label: str,
) -> OracleReply:
    """Invoke the oracle with a timeout; a timeout reads as an empty reply."""
    try:
        reply = await asyncio.wait_for(
            oracle.generate(system_prompt, user_message, max_output_tokens),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("[%s] Model call timed out after %ss", label, timeout)
        return OracleReply(text="", stop_reason=StopReason.OTHER)

    logger.info(
        "[%s] Response length: %d chars, stop reason: %s",
        label, len(reply.text), reply.stop_reason.value,
    )
    return reply
