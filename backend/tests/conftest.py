"""
Pytest configuration for the Easel test suite.

Provides:
- pytest-asyncio for async test support
- deterministic fakes for the classifier, embeddings, image backend and assessment
- an in-memory Qdrant style index seeded with the built-in styles
"""

import random
import re
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient

from easel.agent.state import Intent, IntentAction
from easel.agent.workflow import WorkflowEngine
from easel.config import Config, VectorDBConfig
from easel.knowledge.vector_db import StyleIndex
from easel.services.base import (
    ArtifactService,
    AssessmentService,
    EditOptions,
    EmbeddingService,
    GenerationOptions,
    LanguageClassifier,
)
from easel.services.factory import ServiceFactory

pytest_plugins = ["pytest_asyncio"]

# Words the fake embedder understands; every other token is ignored
VOCABULARY = [
    "cyberpunk",
    "neon",
    "city",
    "watercolor",
    "pastel",
    "painting",
    "oil",
    "minimalist",
    "anime",
    "manga",
    "cat",
    "dog",
]


class KeywordEmbedder(EmbeddingService):
    """Bag-of-words embedding over a fixed vocabulary plus a constant bias term"""

    def __init__(self):
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return len(VOCABULARY) + 1

    @staticmethod
    def vector(text: str) -> List[float]:
        tokens = re.findall(r"[a-z]+", text.lower())
        return [float(tokens.count(word)) for word in VOCABULARY] + [1.0]

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return self.vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.extend(texts)
        return [self.vector(text) for text in texts]


class FakeClassifier(LanguageClassifier):
    """Returns a fixed intent, or raises a fixed error"""

    def __init__(self, intent: Optional[Intent] = None, error: Optional[Exception] = None):
        self.intent = intent
        self.error = error
        self.calls: List[str] = []

    async def classify(self, text: str) -> Intent:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.intent


class FakeArtifactService(ArtifactService):
    """Records calls and returns numbered image URLs"""

    def __init__(self, error: Optional[Exception] = None, result: Optional[str] = "auto"):
        self.error = error
        self.result = result
        self.generate_calls: List[Dict[str, Any]] = []
        self.edit_calls: List[Dict[str, Any]] = []

    @property
    def total_calls(self) -> int:
        return len(self.generate_calls) + len(self.edit_calls)

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        self.generate_calls.append({"prompt": prompt, "options": options})
        return self._result()

    async def edit(self, prompt: str, options: EditOptions) -> str:
        self.edit_calls.append({"prompt": prompt, "options": options})
        return self._result()

    def _result(self) -> Optional[str]:
        if self.error is not None:
            raise self.error
        if self.result == "auto":
            return f"https://images.test/{self.total_calls}.png"
        return self.result


class FakeAssessment(AssessmentService):
    """Returns a fixed verdict, or raises a fixed error"""

    def __init__(self, verdict: Any = None, error: Optional[Exception] = None):
        self.verdict = verdict
        self.error = error
        self.calls = 0

    async def assess(self, intent: Intent, artifact_ref: str) -> Dict[str, Any]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.verdict


def make_intent(**overrides) -> Intent:
    """Generate intent for a cyberpunk cat unless overridden"""
    values = {
        "action": IntentAction.GENERATE,
        "subject": "cat",
        "style": "赛博朋克",
        "prompt": "a cat in cyberpunk style",
        "confidence": 0.95,
        "raw_response": "{}",
    }
    values.update(overrides)
    return Intent(**values)


def build_engine(
    style_index,
    classifier: LanguageClassifier,
    artifacts: ArtifactService,
    config: Optional[Config] = None,
    assessment: Optional[AssessmentService] = None,
    seed: int = 7,
) -> WorkflowEngine:
    return ServiceFactory.create_engine(
        config or Config(),
        style_index,
        classifier=classifier,
        artifacts=artifacts,
        assessment=assessment,
        rng=random.Random(seed),
    )


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest_asyncio.fixture
async def empty_index(embedder):
    """In-memory style index with a collection but no records"""
    client = AsyncQdrantClient(location=":memory:")
    index = StyleIndex(client, embedder, VectorDBConfig(location=":memory:"))
    await index.initialize(seed_styles=[])
    yield index
    await index.close()


@pytest_asyncio.fixture
async def style_index(embedder):
    """In-memory style index seeded with the built-in system styles"""
    client = AsyncQdrantClient(location=":memory:")
    index = StyleIndex(client, embedder, VectorDBConfig(location=":memory:"))
    await index.initialize()
    yield index
    await index.close()
