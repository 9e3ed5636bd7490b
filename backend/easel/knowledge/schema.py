"""Data models for the style knowledge base"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field


class StyleRecord(BaseModel):
    """A style reference stored in the vector index"""
    id: str
    label: str
    prompt_fragment: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    embedding_vector: Optional[List[float]] = None
    is_system_protected: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def embedding_text(self) -> str:
        return embedding_text(self.label, self.prompt_fragment, self.description)


class StyleCreate(BaseModel):
    """Fields accepted when adding a style"""
    id: Optional[str] = None
    label: str = Field(..., min_length=1)
    prompt_fragment: str = Field(..., min_length=1)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_system_protected: bool = False


class StyleUpdate(BaseModel):
    """Patch for an existing style; omitted fields stay unchanged"""
    label: Optional[str] = Field(None, min_length=1)
    prompt_fragment: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


# Fields that may change on a system-protected record
MUTABLE_PROTECTED_FIELDS = frozenset({"description", "tags", "metadata"})

# Patch fields where an explicit null clears the stored value
NULLABLE_STYLE_FIELDS = frozenset({"description"})


class SearchOptions(BaseModel):
    """Options for a similarity search"""
    limit: int = Field(3, ge=1)
    min_similarity: float = Field(0.4, ge=0.0, le=1.0)


class SearchHit(BaseModel):
    """Search result schema"""
    style_id: str
    label: str
    prompt_fragment: str
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BatchDeleteFailure(BaseModel):
    id: str
    reason: str


class BatchDeleteResult(BaseModel):
    """Outcome of deleting several styles"""
    deleted: List[str] = Field(default_factory=list)
    failed: List[BatchDeleteFailure] = Field(default_factory=list)


class IndexStats(BaseModel):
    """Vector index statistics"""
    collection_name: str
    count: int
    dimension: int
    distance: str
    initialized: bool


def embedding_text(label: str, prompt_fragment: str, description: Optional[str]) -> str:
    """Text that is embedded for a style record"""
    return f"{label} {prompt_fragment} {description or ''}".strip()
