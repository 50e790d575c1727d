from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import List, Optional, Sequence

from travel_agent.agent.schemas import ConversationTurn
from travel_agent.memory.short_term import NON_DIALOGUE_TYPES, ConversationStore, StoredMessage
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text or "") / 4)


def truncate_to_budget(turns: Sequence[ConversationTurn], max_tokens: int) -> List[ConversationTurn]:
    """Keep the newest turns that fit in ``max_tokens``; the newest turn is always kept."""
    kept: List[ConversationTurn] = []
    total = 0
    for turn in reversed(turns):
        cost = estimate_tokens(turn.text)
        if kept and total + cost > max_tokens:
            break
        kept.append(turn)
        total += cost
    kept.reverse()
    return kept


def to_turn(record: StoredMessage) -> ConversationTurn:
    return ConversationTurn(role="user" if record.role == "user" else "assistant", text=record.content)


class ContextWindowBuilder:
    """Loads prior dialogue for a conversation, oldest first, within a token budget.

    Never raises: an unavailable store gives an empty history.
    """

    def __init__(
        self,
        window_size: Optional[int] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.window_size = window_size or settings.CONTEXT_WINDOW_SIZE
        self.max_tokens = max_tokens or settings.MAX_CONTEXT_TOKENS
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.PROVIDER_TIMEOUT_SECONDS

    async def build(self, conversation_id: Optional[str], store: Optional[ConversationStore]) -> List[ConversationTurn]:
        if not conversation_id or store is None:
            return []
        started = time.perf_counter()
        try:
            records = await asyncio.wait_for(
                store.find_turns(conversation_id, NON_DIALOGUE_TYPES, self.window_size),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Could not load history for conversation %s: %s", conversation_id, e)
            return []

        turns = [to_turn(r) for r in records if r.message_type not in NON_DIALOGUE_TYPES]
        turns.reverse()
        turns = truncate_to_budget(turns, self.max_tokens)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Context Performance - Conversation %s: %.0fms retrieval, %d messages, %d tokens",
            conversation_id,
            elapsed_ms,
            len(turns),
            sum(estimate_tokens(t.text) for t in turns),
        )
        return turns
