"""External collaborators: classifier, embeddings, image backend, assessment"""

from .base import (
    ArtifactService,
    AssessmentService,
    EditOptions,
    EmbeddingService,
    GenerationOptions,
    LanguageClassifier,
)

__all__ = [
    "LanguageClassifier",
    "EmbeddingService",
    "ArtifactService",
    "AssessmentService",
    "GenerationOptions",
    "EditOptions",
]
