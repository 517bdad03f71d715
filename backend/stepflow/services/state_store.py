# /stepflow/services/state_store.py

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from stepflow.config.settings import Settings
from stepflow.models.flow import ConversationState, Expectation, StateValue
from stepflow.utils.metrics import state_store_operations
from stepflow.workflows.errors import StateStoreError

# Per-conversation key/value state plus the Expectation pointer. Every merge is
# applied as a whole or not at all; a None value deletes its key.

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float)


def split_update(update: Dict[str, StateValue]) -> Tuple[Dict[str, StateValue], list]:
    """Splits a partial update into keys to write and keys to delete."""
    sets, deletes = {}, []
    for key, value in update.items():
        if value is None:
            deletes.append(key)
        elif isinstance(value, _SCALAR_TYPES):
            sets[key] = value
        else:
            raise StateStoreError(f"Unsupported value type {type(value).__name__} for key '{key}'")
    return sets, deletes


class ConversationStore(ABC):
    @abstractmethod
    async def get(self, conversation_id: str) -> ConversationState: ...

    @abstractmethod
    async def merge(self, conversation_id: str, update: Dict[str, StateValue]) -> ConversationState:
        """Merges update into the stored state and returns the resulting state."""

    @abstractmethod
    async def get_expectation(self, conversation_id: str) -> Optional[Expectation]: ...

    @abstractmethod
    async def set_expectation(self, conversation_id: str, expectation: Optional[Expectation]) -> None: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryConversationStore(ConversationStore):
    """Process-local store used in development and tests."""

    def __init__(self):
        self._states: Dict[str, ConversationState] = {}
        self._expectations: Dict[str, Expectation] = {}

    async def get(self, conversation_id: str) -> ConversationState:
        return dict(self._states.get(conversation_id, {}))

    async def merge(self, conversation_id: str, update: Dict[str, StateValue]) -> ConversationState:
        sets, deletes = split_update(update)
        state = self._states.setdefault(conversation_id, {})
        state.update(sets)
        for key in deletes:
            state.pop(key, None)
        state_store_operations.labels(operation="merge", status="success").inc()
        return dict(state)

    async def get_expectation(self, conversation_id: str) -> Optional[Expectation]:
        return self._expectations.get(conversation_id)

    async def set_expectation(self, conversation_id: str, expectation: Optional[Expectation]) -> None:
        if expectation is None:
            self._expectations.pop(conversation_id, None)
        else:
            self._expectations[conversation_id] = expectation


class RedisConversationStore(ConversationStore):
    """
    Keeps each conversation's state in a Redis hash with JSON-encoded values,
    so numbers come back as numbers. Merges run inside MULTI/EXEC.
    """

    def __init__(self, redis_client, key_prefix: str = "stepflow", ttl: Optional[int] = None):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.ttl = ttl

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "stepflow", ttl: Optional[int] = None):
        pool = redis.ConnectionPool.from_url(redis_url, max_connections=20)
        return cls(redis.Redis(connection_pool=pool), key_prefix=key_prefix, ttl=ttl)

    def _state_key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:state:{conversation_id}"

    def _expectation_key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:expectation:{conversation_id}"

    @staticmethod
    def _decode_state(raw: Dict) -> ConversationState:
        state = {}
        for key, value in raw.items():
            key = key.decode("utf-8") if isinstance(key, bytes) else key
            state[key] = json.loads(value)
        return state

    async def get(self, conversation_id: str) -> ConversationState:
        try:
            raw = await self.redis.hgetall(self._state_key(conversation_id))
        except RedisError as e:
            state_store_operations.labels(operation="get", status="error").inc()
            logger.error(f"State read failed for conversation {conversation_id}: {e}")
            raise StateStoreError(f"Could not read state for {conversation_id}") from e
        state_store_operations.labels(operation="get", status="success").inc()
        return self._decode_state(raw or {})

    async def merge(self, conversation_id: str, update: Dict[str, StateValue]) -> ConversationState:
        sets, deletes = split_update(update)
        key = self._state_key(conversation_id)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                if sets:
                    pipe.hset(key, mapping={k: json.dumps(v) for k, v in sets.items()})
                if deletes:
                    pipe.hdel(key, *deletes)
                if self.ttl:
                    pipe.expire(key, self.ttl)
                pipe.hgetall(key)
                results = await pipe.execute()
        except RedisError as e:
            state_store_operations.labels(operation="merge", status="error").inc()
            logger.error(f"State merge failed for conversation {conversation_id}: {e}")
            raise StateStoreError(f"Could not merge state for {conversation_id}") from e
        state_store_operations.labels(operation="merge", status="success").inc()
        return self._decode_state(results[-1] or {})

    async def get_expectation(self, conversation_id: str) -> Optional[Expectation]:
        try:
            raw = await self.redis.get(self._expectation_key(conversation_id))
        except RedisError as e:
            raise StateStoreError(f"Could not read expectation for {conversation_id}") from e
        if not raw:
            return None
        return Expectation.model_validate_json(raw)

    async def set_expectation(self, conversation_id: str, expectation: Optional[Expectation]) -> None:
        key = self._expectation_key(conversation_id)
        try:
            if expectation is None:
                await self.redis.delete(key)
            elif self.ttl:
                await self.redis.setex(key, self.ttl, expectation.model_dump_json())
            else:
                await self.redis.set(key, expectation.model_dump_json())
        except RedisError as e:
            state_store_operations.labels(operation="set_expectation", status="error").inc()
            raise StateStoreError(f"Could not store expectation for {conversation_id}") from e

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()


def build_conversation_store(settings_obj: Settings) -> ConversationStore:
    if not settings_obj.redis_url:
        logger.warning("REDIS_URL is not set; conversation state will be kept in process memory.")
        return MemoryConversationStore()
    return RedisConversationStore.from_url(
        settings_obj.redis_url,
        key_prefix=settings_obj.state_key_prefix,
        ttl=settings_obj.state_ttl_seconds,
    )
