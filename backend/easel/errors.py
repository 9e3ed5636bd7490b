"""Exception hierarchy for Easel"""

from typing import Optional


class EaselError(Exception):
    """Base class for errors raised by Easel components"""

    code = "EASEL_ERROR"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ClassificationError(EaselError):
    """The intent classifier failed or returned an unusable response"""

    code = "INTENT_CLASSIFICATION_FAILED"


class EmbeddingError(EaselError):
    """The embedding backend failed"""

    code = "EMBEDDING_FAILED"


class RetrievalError(EaselError):
    """Similarity search failed"""

    code = "RETRIEVAL_FAILED"


class ArtifactGenerationError(EaselError):
    """The image backend failed to produce an artifact"""

    code = "EXECUTION_FAILED"


class AssessmentError(EaselError):
    """The external quality assessment failed"""

    code = "ASSESSMENT_FAILED"


class WorkflowInvariantError(EaselError):
    """A stage was reached with state it can never legally see"""

    code = "WORKFLOW_ERROR"


class StyleNotFoundError(EaselError):
    """No style record exists with the requested id"""

    code = "STYLE_NOT_FOUND"


class ProtectedStyleError(EaselError):
    """Attempted to delete a system style or change its immutable fields"""

    code = "STYLE_PROTECTED"


class DuplicateStyleError(EaselError):
    """A style record with the same id already exists"""

    code = "STYLE_EXISTS"
