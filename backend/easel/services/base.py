"""Interfaces for the external collaborators used by the workflow"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..agent.state import Intent


class GenerationOptions(BaseModel):
    """Options for generating a new image"""
    model: str
    size: str = "1024x1024"
    seed: Optional[int] = None
    n: int = 1


class EditOptions(BaseModel):
    """Options for editing a masked region of an existing image"""
    model: str
    image_url: str
    mask_base64: str
    size: str = "1024x1024"
    seed: Optional[int] = None


class LanguageClassifier(ABC):
    """Maps free text to a structured intent"""

    @abstractmethod
    async def classify(self, text: str) -> Intent:
        """
        Classify the user's request.

        Args:
            text: Raw user input

        Returns:
            Intent with one of the four allowed actions

        Raises:
            ClassificationError: On transport failure or an unparseable response
        """
        pass


class EmbeddingService(ABC):
    """Turns text into fixed-dimension vectors"""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this service returns"""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text"""
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts, preserving order"""
        pass


class ArtifactService(ABC):
    """Image backend"""

    @abstractmethod
    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        """
        Generate an image.

        Returns:
            Reference (URL) to the produced artifact

        Raises:
            ArtifactGenerationError: If the backend fails
        """
        pass

    @abstractmethod
    async def edit(self, prompt: str, options: EditOptions) -> str:
        """
        Repaint the masked region of a reference image.

        Returns:
            Reference (URL) to the produced artifact

        Raises:
            ArtifactGenerationError: If the backend fails
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the backend"""
        pass


class AssessmentService(ABC):
    """Optional external judge of artifact quality"""

    @abstractmethod
    async def assess(self, intent: Intent, artifact_ref: str) -> Dict[str, Any]:
        """
        Assess an artifact against the intent.

        Returns:
            Raw verdict ``{"passed", "score", "feedback"?, "suggestions"?}``;
            callers validate it
        """
        pass
