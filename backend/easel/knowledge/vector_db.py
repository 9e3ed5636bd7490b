"""Style vector index backed by Qdrant"""

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import NAMESPACE_URL, uuid4, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from ..config import VectorDBConfig
from ..errors import (
    DuplicateStyleError,
    ProtectedStyleError,
    RetrievalError,
    StyleNotFoundError,
)
from ..services.base import EmbeddingService
from .schema import (
    MUTABLE_PROTECTED_FIELDS,
    NULLABLE_STYLE_FIELDS,
    BatchDeleteFailure,
    BatchDeleteResult,
    IndexStats,
    SearchHit,
    SearchOptions,
    StyleCreate,
    StyleRecord,
    StyleUpdate,
)
from .seed_styles import INITIAL_STYLES, SYSTEM_STYLE_CREATED_AT

logger = logging.getLogger(__name__)

DISTANCES = {
    "cosine": Distance.COSINE,
    "dot": Distance.DOT,
    "euclid": Distance.EUCLID,
    "manhattan": Distance.MANHATTAN,
}

# Metrics whose backend score grows with dissimilarity
DISTANCE_METRICS = frozenset({Distance.EUCLID, Distance.MANHATTAN})


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors, 0 when either is zero"""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def distance_to_similarity(distance: float, scale_factor: float) -> float:
    """Map a non-negative distance into (0, 1]"""
    return 1.0 / (1.0 + distance / scale_factor)


def point_id(style_id: str) -> str:
    """Stable Qdrant point id for a style id"""
    return str(uuid5(NAMESPACE_URL, f"easel-style:{style_id}"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StyleIndex:
    """Vector index of style references with CRUD and similarity search"""

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedder: EmbeddingService,
        config: Optional[VectorDBConfig] = None,
    ):
        """
        Initialize the style index.

        Args:
            client: Connected async Qdrant client
            embedder: Embedding service used for records and queries
            config: Vector database configuration
        """
        self.config = config or VectorDBConfig()
        self.client = client
        self.embedder = embedder
        self.collection_name = self.config.collection_name

        distance = self.config.distance.lower()
        if distance not in DISTANCES:
            raise ValueError(
                f"Unsupported distance metric: {self.config.distance}. "
                f"Supported metrics: {', '.join(DISTANCES)}"
            )
        self.distance = DISTANCES[distance]

        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._record_locks: Dict[str, asyncio.Lock] = {}
        self._record_lock_users: Dict[str, int] = {}

    @classmethod
    def from_config(cls, config: VectorDBConfig, embedder: EmbeddingService) -> "StyleIndex":
        """Create an index with a Qdrant client described by the configuration"""
        if config.location:
            client = AsyncQdrantClient(location=config.location)
            logger.info(f"Using local Qdrant at {config.location}, collection: {config.collection_name}")
        else:
            client = AsyncQdrantClient(host=config.host, port=config.port)
            logger.info(
                f"Using Qdrant at {config.host}:{config.port}, collection: {config.collection_name}"
            )
        return cls(client, embedder, config)

    @property
    def dimension(self) -> int:
        return self.embedder.dimension

    async def initialize(
        self,
        force: bool = False,
        seed_styles: Optional[List[StyleCreate]] = None,
    ) -> int:
        """
        Create the collection and seed system styles into an empty index.

        Args:
            force: Drop the existing collection and reseed
            seed_styles: Records to seed (defaults to the built-in styles)

        Returns:
            Number of records seeded
        """
        async with self._init_lock:
            exists = await self.client.collection_exists(self.collection_name)

            if exists and force:
                logger.warning(f"Deleting existing collection: {self.collection_name}")
                await self.client.delete_collection(self.collection_name)
                exists = False

            if not exists:
                logger.info(f"Creating collection: {self.collection_name}")
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=self.dimension, distance=self.distance),
                )

            seeded = 0
            if await self._count() == 0:
                seeded = await self._seed(INITIAL_STYLES if seed_styles is None else seed_styles)
            else:
                logger.info(f"Collection already populated: {self.collection_name}")

            self._initialized = True
            return seeded

    async def _seed(self, styles: List[StyleCreate]) -> int:
        if not styles:
            return 0

        created_at = datetime.fromisoformat(SYSTEM_STYLE_CREATED_AT)
        records = [
            StyleRecord(
                **style.model_dump(exclude={"id"}),
                id=style.id or self._new_id(),
                created_at=created_at,
                updated_at=created_at,
            )
            for style in styles
        ]
        vectors = await self.embedder.embed_batch([record.embedding_text for record in records])

        points = []
        for record, vector in zip(records, vectors):
            record.embedding_vector = vector
            points.append(self._to_point(record))

        await self.client.upsert(collection_name=self.collection_name, points=points)
        logger.info(f"✓ Seeded {len(points)} styles into {self.collection_name}")
        return len(points)

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchHit]:
        """
        Find styles similar to a query.

        Args:
            query: Free-text query
            options: Result limit and similarity floor

        Returns:
            Hits sorted by descending similarity, all at or above the floor

        Raises:
            RetrievalError: If embedding or the backend query fails
        """
        options = options or SearchOptions()

        if await self._count() == 0:
            logger.warning(f"Style index {self.collection_name} is empty")
            return []

        try:
            query_vector = await self.embedder.embed(query)
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                limit=options.limit * self.config.candidate_multiplier,
                with_payload=True,
                with_vectors=self.config.return_vectors,
            )
        except Exception as e:
            logger.error(f"Style search failed: {e}")
            raise RetrievalError("Style search failed", details=str(e)) from e

        candidates = []
        for point in response.points:
            similarity = self._similarity(point.vector, point.score, query_vector)
            if similarity is None:
                logger.warning(f"Skipping style {point.payload.get('id')}: vector dimension mismatch")
                continue
            candidates.append(
                SearchHit(
                    style_id=point.payload["id"],
                    label=point.payload["label"],
                    prompt_fragment=point.payload["prompt_fragment"],
                    similarity=similarity,
                    metadata=point.payload.get("metadata", {}),
                )
            )

        hits = [hit for hit in candidates if hit.similarity >= options.min_similarity]
        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        hits = hits[: options.limit]

        if hits:
            logger.info(
                f"Style search returned {len(hits)} hits "
                f"(best: {hits[0].label} {hits[0].similarity:.3f})"
            )
        elif candidates:
            best = max(hit.similarity for hit in candidates)
            logger.info(
                f"No styles above {options.min_similarity:.2f} "
                f"(best candidate similarity {best:.3f})"
            )
        return hits

    def _similarity(
        self,
        stored_vector: Any,
        score: float,
        query_vector: List[float],
    ) -> Optional[float]:
        if isinstance(stored_vector, list) and stored_vector:
            if len(stored_vector) != len(query_vector):
                return None
            value = cosine_similarity(stored_vector, query_vector)
        elif self.distance in DISTANCE_METRICS:
            value = distance_to_similarity(score, self.config.distance_scale_factor)
        else:
            value = score
        return min(1.0, max(0.0, value))

    async def add(self, style: StyleCreate) -> StyleRecord:
        """
        Add a style record.

        Raises:
            DuplicateStyleError: If a record with the same id exists
        """
        style_id = style.id or self._new_id()
        async with self._record_lock(style_id):
            if await self._retrieve(style_id) is not None:
                raise DuplicateStyleError(f"Style '{style_id}' already exists")

            now = _now()
            record = StyleRecord(
                **style.model_dump(exclude={"id"}),
                id=style_id,
                created_at=now,
                updated_at=now,
            )
            record.embedding_vector = await self.embedder.embed(record.embedding_text)
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[self._to_point(record)],
            )

        logger.info(f"Added style {style_id} ({record.label})")
        return record

    async def get(self, style_id: str) -> StyleRecord:
        """
        Get a style record by id.

        Raises:
            StyleNotFoundError: If no record has this id
        """
        record = await self._retrieve(style_id)
        if record is None:
            raise StyleNotFoundError(f"Style '{style_id}' not found")
        return record

    async def list_styles(self) -> List[StyleRecord]:
        """All style records, ordered by id"""
        records = []
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection_name,
                limit=100,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(self._from_payload(point.payload) for point in points)
            if offset is None:
                break
        return sorted(records, key=lambda record: record.id)

    async def update(self, style_id: str, changes: StyleUpdate) -> StyleRecord:
        """
        Patch a style record, re-embedding only when the embedded text changes.

        Raises:
            StyleNotFoundError: If no record has this id
            ProtectedStyleError: If a protected record's immutable field would change
        """
        async with self._record_lock(style_id):
            record = await self.get(style_id)
            patch = changes.model_dump(exclude_unset=True)

            changed = {
                field: value
                for field, value in patch.items()
                if (value is not None or field in NULLABLE_STYLE_FIELDS)
                and getattr(record, field) != value
            }
            if record.is_system_protected:
                blocked = sorted(set(changed) - MUTABLE_PROTECTED_FIELDS)
                if blocked:
                    raise ProtectedStyleError(
                        f"Cannot change {', '.join(blocked)} of system style '{style_id}'"
                    )

            if not changed:
                return record

            previous_text = record.embedding_text
            updated = record.model_copy(update={**changed, "updated_at": _now()})

            if updated.embedding_text != previous_text:
                updated.embedding_vector = await self.embedder.embed(updated.embedding_text)
                await self.client.upsert(
                    collection_name=self.collection_name,
                    points=[self._to_point(updated)],
                )
                logger.info(f"Updated style {style_id} and recomputed its embedding")
            else:
                await self.client.set_payload(
                    collection_name=self.collection_name,
                    payload=self._payload(updated),
                    points=[point_id(style_id)],
                )
                logger.info(f"Updated style {style_id}")

            return updated

    async def delete(self, style_id: str) -> None:
        """
        Delete a style record.

        Raises:
            StyleNotFoundError: If no record has this id
            ProtectedStyleError: If the record is a system style
        """
        async with self._record_lock(style_id):
            record = await self.get(style_id)
            if record.is_system_protected:
                raise ProtectedStyleError(f"System style '{style_id}' cannot be deleted")

            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[point_id(style_id)]),
            )
        logger.info(f"Deleted style {style_id}")

    async def delete_many(self, style_ids: List[str]) -> BatchDeleteResult:
        """Delete several styles, collecting per-id failures"""
        result = BatchDeleteResult()
        for style_id in style_ids:
            try:
                await self.delete(style_id)
                result.deleted.append(style_id)
            except (StyleNotFoundError, ProtectedStyleError) as e:
                result.failed.append(BatchDeleteFailure(id=style_id, reason=e.message))
        return result

    async def count(self) -> int:
        return await self._count()

    async def stats(self) -> IndexStats:
        return IndexStats(
            collection_name=self.collection_name,
            count=await self._count(),
            dimension=self.dimension,
            distance=self.config.distance.lower(),
            initialized=self._initialized,
        )

    async def close(self) -> None:
        await self.client.close()

    async def _count(self) -> int:
        if not await self.client.collection_exists(self.collection_name):
            return 0
        result = await self.client.count(collection_name=self.collection_name, exact=True)
        return result.count

    @asynccontextmanager
    async def _record_lock(self, style_id: str):
        """Serialize writes to one record; the lock is dropped once nobody holds or awaits it"""
        lock = self._record_locks.setdefault(style_id, asyncio.Lock())
        self._record_lock_users[style_id] = self._record_lock_users.get(style_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._record_lock_users[style_id] -= 1
            if self._record_lock_users[style_id] == 0:
                del self._record_lock_users[style_id]
                del self._record_locks[style_id]

    async def _retrieve(self, style_id: str) -> Optional[StyleRecord]:
        points = await self.client.retrieve(
            collection_name=self.collection_name,
            ids=[point_id(style_id)],
            with_payload=True,
            with_vectors=True,
        )
        if not points:
            return None
        vector = points[0].vector if isinstance(points[0].vector, list) else None
        return self._from_payload(points[0].payload, vector)

    def _to_point(self, record: StyleRecord) -> PointStruct:
        return PointStruct(
            id=point_id(record.id),
            vector=record.embedding_vector,
            payload=self._payload(record),
        )

    @staticmethod
    def _payload(record: StyleRecord) -> Dict[str, Any]:
        return record.model_dump(mode="json", exclude={"embedding_vector"})

    @staticmethod
    def _from_payload(payload: Dict[str, Any], vector: Optional[List[float]] = None) -> StyleRecord:
        return StyleRecord(**payload, embedding_vector=vector)

    @staticmethod
    def _new_id() -> str:
        return f"custom_{uuid4().hex[:8]}"
