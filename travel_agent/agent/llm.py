from __future__ import annotations

import asyncio
import json
import re
from typing import Any, List, Optional, Protocol, Sequence

from autogen_core.models import AssistantMessage, LLMMessage, SystemMessage, UserMessage
from autogen_ext.models.openai import OpenAIChatCompletionClient

from travel_agent.agent.schemas import ConversationTurn
from travel_agent.utils.config import settings


class CompletionError(RuntimeError):
    pass


class CompletionService(Protocol):
    """Black-box text completion: system instruction + dialogue turns -> reply text."""

    async def complete(
        self,
        *,
        system: str,
        messages: Sequence[ConversationTurn],
        temperature: float,
        max_tokens: int,
    ) -> str:
        ...


class OpenAICompletionService:
    """Completion service backed by the autogen OpenAI chat client."""

    def __init__(
        self,
        model_client: Optional[OpenAIChatCompletionClient] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        if model_client is not None:
            self._model_client = model_client
        else:
            if not settings.OPENAI_API_KEY.strip():
                raise RuntimeError("OPENAI_API_KEY is not set")
            self._model_client = OpenAIChatCompletionClient(
                model=settings.OPENAI_MODEL,
                api_key=settings.OPENAI_API_KEY,
            )
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.LLM_TIMEOUT_SECONDS

    @staticmethod
    def to_llm_messages(system: str, messages: Sequence[ConversationTurn]) -> List[LLMMessage]:
        out: List[LLMMessage] = [SystemMessage(content=system)]
        for turn in messages:
            if turn.role == "user":
                out.append(UserMessage(content=turn.text, source="user"))
            else:
                out.append(AssistantMessage(content=turn.text, source="assistant"))
        return out

    async def complete(
        self,
        *,
        system: str,
        messages: Sequence[ConversationTurn],
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            result = await asyncio.wait_for(
                self._model_client.create(
                    self.to_llm_messages(system, messages),
                    extra_create_args={"temperature": temperature, "max_tokens": max_tokens},
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise CompletionError(f"completion timed out after {self._timeout}s") from e
        content = result.content
        if not isinstance(content, str) or not content.strip():
            raise CompletionError("completion returned no text")
        return content.strip()

    async def close(self) -> None:
        await self._model_client.close()


# ---------- reply parsing ----------
_FENCE = re.compile(r"^```(?:json|JSON)?\s*(.*?)\s*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    cleaned = (text or "").strip()
    m = _FENCE.match(cleaned)
    return m.group(1).strip() if m else cleaned


def parse_json_reply(text: str) -> Any:
    """Parse a model reply that should be pure JSON, tolerating a markdown fence.

    Raises ``json.JSONDecodeError`` (a ``ValueError``) when it is not JSON.
    """
    return json.loads(strip_code_fence(text))
