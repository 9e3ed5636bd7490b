"""Retrieval augmenter stage

Enriches the prompt with fragments from the most similar style references.

Query weighting: when the user named a style, the canonical label is repeated
so it outweighs the subject in the query embedding. When the canonical label
is among the hits it is moved to the front, and hits that are clearly weaker
than it are dropped. If nothing clears the similarity floor, one relaxed
search on the label alone is attempted.
"""

import logging
from typing import Dict, List, Optional, Protocol, Tuple

from ...config import RetrievalConfig
from ...knowledge.schema import SearchHit, SearchOptions
from ...knowledge.seed_styles import STYLE_TRANSLATIONS
from ..state import (
    EnhancedPrompt,
    Intent,
    RetrievedStyle,
    Stage,
    StateUpdate,
    ThoughtLogEntry,
    WorkflowState,
)

logger = logging.getLogger(__name__)


class SimilaritySearch(Protocol):
    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchHit]:
        ...


def build_query(
    intent: Intent,
    raw_text: str,
    translations: Dict[str, str] = STYLE_TRANSLATIONS,
) -> Tuple[str, Optional[str]]:
    """
    Build the retrieval query for an intent.

    Returns:
        ``(query, translated_label)``; the label is None when the style is
        not in the translation table
    """
    if intent.style:
        native = intent.style.strip()
        translated = translations.get(native)
        parts = [native, translated, translated, intent.subject]
    else:
        translated = None
        parts = [intent.subject, raw_text]

    query = " ".join(part.strip() for part in parts if part and part.strip())
    return query, translated


def rerank_by_label(hits: List[SearchHit], label: str, competitive_ratio: float) -> List[SearchHit]:
    """Put the hit matching ``label`` first and drop hits far weaker than it"""
    matched = next((hit for hit in hits if hit.label.lower() == label.lower()), None)
    if matched is None:
        return hits

    floor = matched.similarity * competitive_ratio
    others = [hit for hit in hits if hit is not matched and hit.similarity >= floor]
    return [matched, *others]


class RetrievalAugmenter:
    """Augments the prompt with retrieved style fragments"""

    stage = Stage.AUGMENTING

    def __init__(
        self,
        index: SimilaritySearch,
        config: Optional[RetrievalConfig] = None,
        translations: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the augmenter.

        Args:
            index: Similarity search over style references
            config: Retrieval configuration
            translations: Native style name to canonical label table
        """
        self.index = index
        self.config = config or RetrievalConfig()
        self.translations = STYLE_TRANSLATIONS if translations is None else translations

    async def execute(self, state: WorkflowState) -> StateUpdate:
        original = state.user_input.text
        intent = state.intent

        if intent is None:
            logger.warning("No intent available, skipping style retrieval")
            return self._passthrough(original, "No intent available, using the original prompt")

        query, translated = build_query(intent, original, self.translations)
        if not query:
            return self._passthrough(original, "Nothing to search for, using the original prompt")

        try:
            hits = await self._retrieve(query, intent, translated)
        except Exception as e:
            logger.error(f"Style retrieval failed, continuing without it: {e}")
            return self._passthrough(original, "Style retrieval unavailable, using the original prompt")

        retrieved = [
            RetrievedStyle(
                style=hit.label,
                prompt_fragment=hit.prompt_fragment,
                similarity=hit.similarity,
            )
            for hit in hits
        ]

        if retrieved:
            fragments = ", ".join(item.prompt_fragment for item in retrieved)
            final = f"{original}, {fragments}"
            labels = ", ".join(item.style for item in retrieved)
            message = f"Retrieved {len(retrieved)} style references: {labels}"
        else:
            final = original
            message = "No matching style references, using the original prompt"

        logger.info(f"Augmented prompt with {len(retrieved)} styles for query '{query}'")
        return StateUpdate(
            enhanced_prompt=EnhancedPrompt(original=original, retrieved=retrieved, final=final),
            thought_log=[
                ThoughtLogEntry(
                    stage=self.stage,
                    message=message,
                    progress=30,
                    metadata={"query": query, "retry_count": state.retry_count},
                )
            ],
        )

    async def _retrieve(
        self,
        query: str,
        intent: Intent,
        translated: Optional[str],
    ) -> List[SearchHit]:
        hits = await self.index.search(
            query,
            SearchOptions(limit=self.config.limit, min_similarity=self.config.min_similarity),
        )

        if not hits and translated:
            relaxed = self.config.min_similarity * self.config.relaxed_similarity_factor
            logger.info(f"No hits for '{query}', retrying with '{translated}' at {relaxed:.2f}")
            hits = await self.index.search(
                translated,
                SearchOptions(limit=self.config.limit, min_similarity=relaxed),
            )

        if intent.style and hits:
            canonical = translated or intent.style.strip()
            hits = rerank_by_label(hits, canonical, self.config.competitive_ratio)

        return hits

    def _passthrough(self, original: str, message: str) -> StateUpdate:
        return StateUpdate(
            enhanced_prompt=EnhancedPrompt(original=original, retrieved=[], final=original),
            thought_log=[ThoughtLogEntry(stage=self.stage, message=message, progress=30)],
        )
