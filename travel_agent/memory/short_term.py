from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Literal, Optional, Protocol, Sequence

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel, Field

from travel_agent.utils.config import settings

# message types that are never dialogue
NON_DIALOGUE_TYPES = ("system", "error")


class StoredMessage(BaseModel):
    conversation_id: str
    role: Literal["user", "assistant", "system"]
    content: str
    message_type: str = "text"  # text|cards|system|error
    ts: float = Field(default_factory=lambda: time.time())


class ConversationStore(Protocol):
    """Externally owned history. ``find_turns`` returns newest first."""

    async def find_turns(
        self,
        conversation_id: str,
        exclude_types: Sequence[str] = NON_DIALOGUE_TYPES,
        limit: int = 20,
    ) -> List[StoredMessage]: ...

    async def append_turn(
        self,
        conversation_id: str,
        role: str,
        content: str,
        message_type: str = "text",
    ) -> StoredMessage: ...


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._lock = asyncio.Lock()

    async def append_turn(self, conversation_id: str, role: str, content: str, message_type: str = "text") -> StoredMessage:
        msg = StoredMessage(conversation_id=conversation_id, role=role, content=content, message_type=message_type)
        async with self._lock:
            self._messages.setdefault(conversation_id, []).append(msg)
        return msg

    async def find_turns(
        self,
        conversation_id: str,
        exclude_types: Sequence[str] = NON_DIALOGUE_TYPES,
        limit: int = 20,
    ) -> List[StoredMessage]:
        async with self._lock:
            msgs = [m for m in self._messages.get(conversation_id, []) if m.message_type not in exclude_types]
        # insertion order breaks timestamp ties
        newest_first = [m for _, m in sorted(enumerate(msgs), key=lambda p: (p[1].ts, p[0]), reverse=True)]
        return newest_first[:limit]


class MongoConversationStore:
    def __init__(self, client: Optional[AsyncIOMotorClient] = None) -> None:
        self._client = client or AsyncIOMotorClient(settings.MONGO_URI, uuidRepresentation="standard")
        self._db = self._client[settings.MONGO_DB]
        self._messages = self._db["messages"]

    async def append_turn(self, conversation_id: str, role: str, content: str, message_type: str = "text") -> StoredMessage:
        msg = StoredMessage(conversation_id=conversation_id, role=role, content=content, message_type=message_type)
        await self._messages.insert_one(msg.model_dump())
        return msg

    async def find_turns(
        self,
        conversation_id: str,
        exclude_types: Sequence[str] = NON_DIALOGUE_TYPES,
        limit: int = 20,
    ) -> List[StoredMessage]:
        cursor = (
            self._messages.find(
                {"conversation_id": conversation_id, "message_type": {"$nin": list(exclude_types)}},
                {"_id": 0},
            )
            .sort("ts", -1)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [StoredMessage(**doc) for doc in docs]


def get_conversation_store() -> ConversationStore:
    if settings.MONGO_URI.strip():
        return MongoConversationStore()
    return InMemoryConversationStore()
