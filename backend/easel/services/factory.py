"""Factory for collaborators and the assembled workflow

Every call builds fresh instances from the configuration; nothing is cached
at module level.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from ..agent.workflow import (
    IntentPlanner,
    QualityCritic,
    RetrievalAugmenter,
    TaskExecutor,
    WorkflowEngine,
)
from ..config import Config
from ..knowledge.vector_db import StyleIndex
from .artifacts import MockArtifactService, OpenAIArtifactService
from .assessment import OpenAIAssessmentService
from .base import (
    ArtifactService,
    AssessmentService,
    EmbeddingService,
    LanguageClassifier,
)
from .classifier import OpenAIIntentClassifier
from .embedding import OpenAIEmbeddingService

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Long-lived objects shared by request handlers"""
    config: Config
    style_index: StyleIndex
    engine: WorkflowEngine
    artifacts: Optional[ArtifactService] = None

    async def close(self) -> None:
        await self.style_index.close()
        if self.artifacts is not None:
            await self.artifacts.close()


class ServiceFactory:
    """Creates collaborators and wires the workflow engine"""

    @staticmethod
    def create_classifier(config: Config) -> LanguageClassifier:
        return OpenAIIntentClassifier(config)

    @staticmethod
    def create_embedding_service(config: Config) -> EmbeddingService:
        """
        Create the embedding service.

        Raises:
            ValueError: If the provider is not supported
        """
        provider = config.embedding.provider.lower()
        if provider == "openai":
            return OpenAIEmbeddingService(config)
        raise ValueError(
            f"Unsupported embedding provider: {provider}. Supported providers: openai"
        )

    @staticmethod
    def create_artifact_service(config: Config) -> ArtifactService:
        """
        Create the image backend.

        Raises:
            ValueError: If the provider is not supported
        """
        provider = config.artifacts.provider.lower()
        if provider == "mock":
            return MockArtifactService(delay_seconds=config.artifacts.mock_delay_seconds)
        elif provider == "openai":
            return OpenAIArtifactService(config)
        raise ValueError(
            f"Unsupported image provider: {provider}. Supported providers: mock, openai"
        )

    @staticmethod
    def create_assessment_service(config: Config) -> Optional[AssessmentService]:
        if not config.critic.use_external_assessment:
            return None
        return OpenAIAssessmentService(config)

    @staticmethod
    def create_engine(
        config: Config,
        style_index: StyleIndex,
        classifier: LanguageClassifier,
        artifacts: ArtifactService,
        assessment: Optional[AssessmentService] = None,
        rng: Optional[random.Random] = None,
    ) -> WorkflowEngine:
        """
        Assemble the workflow engine from its collaborators.

        Args:
            config: Configuration object
            style_index: Style index used by the augmenter
            classifier: Intent classifier used by the planner
            artifacts: Image backend used by the executor
            assessment: Optional external assessment used by the critic
            rng: Random source for the critic's heuristic

        Returns:
            WorkflowEngine instance
        """
        return WorkflowEngine(
            planner=IntentPlanner(classifier),
            augmenter=RetrievalAugmenter(style_index, config.retrieval),
            executor=TaskExecutor(artifacts, config.artifacts),
            critic=QualityCritic(config.critic, assessment, rng),
        )

    @staticmethod
    async def build_services(config: Config) -> AppServices:
        """Create, seed and wire everything the HTTP application needs"""
        embedder = ServiceFactory.create_embedding_service(config)
        style_index = StyleIndex.from_config(config.vector_db, embedder)

        seeded = await style_index.initialize(
            force=config.vector_db.force_reseed,
            seed_styles=None if config.vector_db.seed_on_startup else [],
        )
        logger.info(f"Style index ready ({seeded} styles seeded)")

        artifacts = ServiceFactory.create_artifact_service(config)
        engine = ServiceFactory.create_engine(
            config,
            style_index,
            classifier=ServiceFactory.create_classifier(config),
            artifacts=artifacts,
            assessment=ServiceFactory.create_assessment_service(config),
        )
        return AppServices(config=config, style_index=style_index, engine=engine, artifacts=artifacts)
