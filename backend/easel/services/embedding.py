"""Embedding generation for style records and queries"""

import logging
from typing import List

from openai import AsyncOpenAI

from ..config import Config
from ..errors import EmbeddingError
from .base import EmbeddingService

logger = logging.getLogger(__name__)


class OpenAIEmbeddingService(EmbeddingService):
    """Generate embeddings for text using OpenAI API"""

    def __init__(self, config: Config):
        """Initialize embedding generator"""
        self.config = config

        api_key = config.get_api_key("embedding")
        if not api_key:
            raise ValueError(f"{config.embedding.api_key_env} not found")

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.embedding.base_url,
            timeout=config.embedding.timeout_seconds,
        )
        self.model = config.embedding.model
        self.batch_size = config.embedding.batch_size
        self._dimension = config.embedding.dimensions

        logger.info(f"Initialized embedding service with model: {self.model}")

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a list of texts"""
        if not texts:
            return []

        all_embeddings = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            batch_num = i // self.batch_size + 1

            logger.debug(f"Embedding batch {batch_num}/{total_batches} ({len(batch)} texts)")

            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=batch,
                    dimensions=self._dimension,
                )
            except Exception as e:
                logger.error(f"Error generating embeddings for batch {batch_num}: {e}")
                raise EmbeddingError("Embedding generation failed", details=str(e)) from e

            all_embeddings.extend(item.embedding for item in response.data)

        logger.info(f"✓ Generated {len(all_embeddings)} embeddings")
        return all_embeddings

    async def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text"""
        embeddings = await self.embed_batch([text])
        if not embeddings:
            raise EmbeddingError("Embedding backend returned no vectors")
        return embeddings[0]
