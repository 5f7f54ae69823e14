"""Redis implementation of KnowledgeRepository.

Entries live in hashes; a sorted set per category keeps them ranked by
confidence, then usage, so the candidate window is a single ZREVRANGE.
Mutations of an existing entry run as Lua scripts, which Redis executes
atomically, so concurrent hits and feedback never lose updates.

Keys (prefix defaults to "knowledge"):
    {prefix}:ids               id counter
    {prefix}:dimension         embedding dimension of the store
    {prefix}:entry:{id}        entry hash
    {prefix}:rank:{category}   candidate ranking
"""

import json
import logging
import math
import re
import struct
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError
from redisvl.index import AsyncSearchIndex
from redisvl.query import FilterQuery
from redisvl.query.filter import Text

from knowledge_cache.config import get_redis_client, settings
from knowledge_cache.entities import Category, KnowledgeEntry, KnowledgeStats, TopEntry
from knowledge_cache.errors import StorageFailure

logger = logging.getLogger(__name__)

# Confidence has 1e-6 resolution in the ranking; usage breaks ties.
_CONFIDENCE_SCALE = 1_000_000
_USAGE_SCALE = 1_000_000_000

_RANK_LUA = """
local function rank(confidence, usage)
  if usage > 999999999 then usage = 999999999 end
  return string.format('%.0f', math.floor(confidence * 1000000) * 1000000000 + usage)
end
"""

# KEYS[1] entry hash; ARGV: entry id, now, rank key prefix
_INCREMENT_USAGE_LUA = _RANK_LUA + """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return -1
end
local usage = redis.call('HINCRBY', KEYS[1], 'usage_count', 1)
redis.call('HSET', KEYS[1], 'last_used_at', ARGV[2])
local fields = redis.call('HMGET', KEYS[1], 'confidence', 'category')
redis.call('ZADD', ARGV[3] .. fields[2], rank(tonumber(fields[1]), usage), ARGV[1])
return usage
"""

# KEYS[1] entry hash; ARGV: entry id, feedback score, smoothing, rank key prefix
_APPLY_FEEDBACK_LUA = _RANK_LUA + """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return -1
end
local fields = redis.call('HMGET', KEYS[1], 'confidence', 'usage_count', 'category')
local smoothing = tonumber(ARGV[3])
local confidence = tonumber(fields[1]) * (1 - smoothing) + tonumber(ARGV[2]) * smoothing
confidence = math.max(0, math.min(1, confidence))
local value = string.format('%.17g', confidence)
redis.call('HSET', KEYS[1], 'confidence', value)
redis.call('ZADD', ARGV[4] .. fields[3], rank(confidence, tonumber(fields[2])), ARGV[1])
return value
"""

# KEYS[1] entry hash, KEYS[2] rank key; ARGV: entry id, min confidence, created-before cutoff
_DELETE_STALE_LUA = """
local fields = redis.call('HMGET', KEYS[1], 'confidence', 'usage_count', 'created_at')
if not fields[1] then
  redis.call('ZREM', KEYS[2], ARGV[1])
  return 0
end
local confidence = tonumber(fields[1])
local usage = tonumber(fields[2])
local created_at = tonumber(fields[3])
if confidence < tonumber(ARGV[2]) or (usage == 0 and created_at < tonumber(ARGV[3])) then
  redis.call('DEL', KEYS[1])
  redis.call('ZREM', KEYS[2], ARGV[1])
  return 1
end
return 0
"""


def _rank_score(confidence: float, usage_count: int) -> int:
    return math.floor(confidence * _CONFIDENCE_SCALE) * _USAGE_SCALE + min(usage_count, _USAGE_SCALE - 1)


def _pack_vector(vector: list[float]) -> bytes:
    return struct.pack(f"{len(vector)}f", *vector)


def _unpack_vector(raw: bytes) -> list[float]:
    return list(struct.unpack(f"{len(raw) // 4}f", raw))


def _timestamp(raw: bytes) -> datetime:
    return datetime.fromtimestamp(float(raw), tz=timezone.utc)


class RedisKnowledgeRepository:
    """Redis implementation of the KnowledgeRepository protocol.

    This class satisfies the protocol through structural typing - no
    explicit inheritance needed.

    Lexical search uses a RediSearch index over query_text and topic,
    managed through redisvl and created on first use.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize the Redis knowledge repository.

        Args:
            redis_client: asyncio Redis client. If None, creates default.
            prefix: Key prefix for all knowledge keys.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = prefix or settings.knowledge_prefix
        self._index: AsyncSearchIndex | None = None

        self._increment_usage = self._client.register_script(_INCREMENT_USAGE_LUA)
        self._apply_feedback = self._client.register_script(_APPLY_FEEDBACK_LUA)
        self._delete_stale = self._client.register_script(_DELETE_STALE_LUA)

    @classmethod
    def create(cls, prefix: str | None = None) -> "RedisKnowledgeRepository":
        """Factory method to create RedisKnowledgeRepository with defaults.

        Args:
            prefix: Key prefix. If None, uses settings.

        Returns:
            Configured RedisKnowledgeRepository
        """
        return cls(prefix=prefix)

    @property
    def _ids_key(self) -> str:
        return f"{self._prefix}:ids"

    @property
    def _dimension_key(self) -> str:
        return f"{self._prefix}:dimension"

    @property
    def _rank_prefix(self) -> str:
        return f"{self._prefix}:rank:"

    def _entry_key(self, entry_id: str) -> str:
        return f"{self._prefix}:entry:{entry_id}"

    def _rank_key(self, category: Category) -> str:
        return f"{self._rank_prefix}{category.value}"

    @contextmanager
    def _storage_errors(
        self,
        action: str,
        category: Category | None = None,
        entry_id: str | None = None,
    ) -> Iterator[None]:
        """Translate Redis errors into StorageFailure."""
        try:
            yield
        except RedisError as e:
            raise StorageFailure(
                f"Redis {action} failed: {e}",
                category=category.value if category else None,
                entry_id=entry_id,
            ) from e

    async def ensure_dimension(self, dimension: int) -> int:
        """Record the embedding dimension on first write and return the fixed one."""
        with self._storage_errors("dimension check"):
            await self._client.set(self._dimension_key, dimension, nx=True)
            stored = await self._client.get(self._dimension_key)
        return int(stored)

    async def get_dimension(self) -> int | None:
        """Return the store's embedding dimension, or None while unset."""
        with self._storage_errors("dimension lookup"):
            stored = await self._client.get(self._dimension_key)
        return int(stored) if stored is not None else None

    async def insert(
        self,
        category: Category,
        topic: str,
        query_text: str,
        response_payload: dict[str, Any],
        vector: list[float],
        confidence: float,
        now: float,
    ) -> str:
        """Store a new entry in one MULTI/EXEC transaction.

        Returns:
            The new entry id
        """
        with self._storage_errors("insert", category=category):
            entry_id = str(await self._client.incr(self._ids_key))
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._entry_key(entry_id),
                    mapping={
                        "category": category.value,
                        "topic": topic,
                        "query_text": query_text,
                        "response_payload": json.dumps(response_payload),
                        "embedding": _pack_vector(vector),
                        "confidence": repr(float(confidence)),
                        "usage_count": 0,
                        "created_at": repr(now),
                        "last_used_at": repr(now),
                    },
                )
                pipe.zadd(self._rank_key(category), {entry_id: _rank_score(confidence, 0)})
                await pipe.execute()
        return entry_id

    async def candidates(self, category: Category, window: int) -> list[KnowledgeEntry]:
        """Return the top window entries of a category by confidence, then usage."""
        with self._storage_errors("candidate fetch", category=category):
            raw_ids = await self._client.zrevrange(self._rank_key(category), 0, window - 1)
        return await self.get_many([raw.decode() for raw in raw_ids])

    async def get_many(self, entry_ids: list[str]) -> list[KnowledgeEntry]:
        """Fetch entries by id, preserving order and skipping vanished ids."""
        if not entry_ids:
            return []

        with self._storage_errors("entry fetch"):
            async with self._client.pipeline(transaction=False) as pipe:
                for entry_id in entry_ids:
                    pipe.hgetall(self._entry_key(entry_id))
                rows = await pipe.execute()

        return [
            self._to_entry(entry_id, row)
            for entry_id, row in zip(entry_ids, rows)
            if row
        ]

    def _to_entry(self, entry_id: str, row: dict[bytes, bytes]) -> KnowledgeEntry:
        """Convert a raw hash into a KnowledgeEntry."""
        data = {key.decode(): value for key, value in row.items()}
        try:
            return KnowledgeEntry(
                id=entry_id,
                category=Category(data["category"].decode()),
                topic=data["topic"].decode(),
                query_text=data["query_text"].decode(),
                response_payload=json.loads(data["response_payload"]),
                embedding=_unpack_vector(data["embedding"]),
                confidence=float(data["confidence"]),
                usage_count=int(data["usage_count"]),
                created_at=_timestamp(data["created_at"]),
                last_used_at=_timestamp(data["last_used_at"]),
            )
        except (KeyError, ValueError, struct.error) as e:
            raise StorageFailure(f"Corrupt knowledge record: {e!r}", entry_id=entry_id) from e

    async def increment_usage(self, entry_id: str, now: float) -> int | None:
        """Atomically add one use; None if the entry is gone."""
        with self._storage_errors("usage increment", entry_id=entry_id):
            usage = await self._increment_usage(
                keys=[self._entry_key(entry_id)],
                args=[entry_id, repr(now), self._rank_prefix],
            )
        return None if usage == -1 else int(usage)

    async def apply_feedback(self, entry_id: str, feedback_score: float, smoothing: float) -> float | None:
        """Atomically blend the feedback into confidence; None if the entry is gone."""
        with self._storage_errors("confidence update", entry_id=entry_id):
            value = await self._apply_feedback(
                keys=[self._entry_key(entry_id)],
                args=[entry_id, repr(float(feedback_score)), repr(float(smoothing)), self._rank_prefix],
            )
        return None if value == -1 else float(value)

    async def delete_stale(self, min_confidence: float, created_before: float) -> int:
        """Delete low-confidence entries and unused entries created before the cutoff.

        Each deletion re-checks the predicate inside a script, so an entry
        that gets used between the scan and the delete survives.
        """
        deleted = 0
        for category in Category:
            rank_key = self._rank_key(category)
            with self._storage_errors("cleanup", category=category):
                raw_ids = await self._client.zrange(rank_key, 0, -1)
                for raw in raw_ids:
                    entry_id = raw.decode()
                    deleted += int(
                        await self._delete_stale(
                            keys=[self._entry_key(entry_id), rank_key],
                            args=[entry_id, repr(float(min_confidence)), repr(float(created_before))],
                        )
                    )
        return deleted

    async def collect_stats(self, top: int = 10) -> KnowledgeStats:
        """Aggregate counts, confidence and usage over every entry."""
        with self._storage_errors("stats"):
            ids_by_category: list[tuple[Category, str]] = []
            for category in Category:
                raw_ids = await self._client.zrange(self._rank_key(category), 0, -1)
                ids_by_category.extend((category, raw.decode()) for raw in raw_ids)

            async with self._client.pipeline(transaction=False) as pipe:
                for _, entry_id in ids_by_category:
                    pipe.hmget(self._entry_key(entry_id), ["topic", "confidence", "usage_count"])
                rows = await pipe.execute() if ids_by_category else []

        by_category: dict[str, int] = {}
        entries: list[TopEntry] = []
        for (category, entry_id), (topic, confidence, usage_count) in zip(ids_by_category, rows):
            if confidence is None:
                continue
            by_category[category.value] = by_category.get(category.value, 0) + 1
            entries.append(
                TopEntry(
                    id=entry_id,
                    category=category.value,
                    topic=topic.decode() if topic else category.value,
                    usage_count=int(usage_count or 0),
                    confidence=float(confidence),
                )
            )

        total = len(entries)
        entries.sort(key=lambda e: e.usage_count, reverse=True)
        return KnowledgeStats(
            total_entries=total,
            by_category=by_category,
            average_confidence=sum(e.confidence for e in entries) / total if total else 0.0,
            total_usage=sum(e.usage_count for e in entries),
            top_entries=entries[:top],
        )

    async def _ensure_index(self) -> AsyncSearchIndex:
        """Ensure the lexical search index exists."""
        if self._index is not None:
            return self._index

        index_schema = {
            "index": {
                "name": f"{self._prefix}_idx",
                "prefix": f"{self._prefix}:entry",
                "key_separator": ":",
                "storage_type": "hash",
            },
            "fields": [
                {"name": "query_text", "type": "text", "attrs": {"weight": 1.0}},
                {"name": "topic", "type": "text", "attrs": {"weight": 2.0}},
                {"name": "category", "type": "tag"},
                {"name": "confidence", "type": "numeric"},
                {"name": "usage_count", "type": "numeric"},
            ],
        }

        index = AsyncSearchIndex.from_dict(index_schema, redis_client=self._client)
        if await index.exists():
            logger.info("Using existing search index: %s", index.name)
        else:
            await index.create(overwrite=False)
            logger.info("Created new search index: %s", index.name)

        self._index = index
        return index

    async def text_search(self, text: str, limit: int) -> list[str]:
        """Match every word of text against query_text or topic."""
        terms = " ".join(re.findall(r"\w+", text.lower()))
        if not terms:
            return []

        try:
            index = await self._ensure_index()
            query = FilterQuery(
                filter_expression=(Text("query_text") % terms) | (Text("topic") % terms),
                return_fields=["category", "topic"],
                num_results=limit,
            )
            results = await index.query(query)
        except Exception as e:
            raise StorageFailure(f"Full-text search failed: {e}") from e

        return [str(row["id"]).rsplit(":", 1)[-1] for row in results]

    async def health_check(self) -> bool:
        """Check if Redis is accessible."""
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
