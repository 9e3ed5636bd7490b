"""
Pydantic models for API request/response validation
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

from ..agent.state import MaskData, UserInput
from ..knowledge.schema import StyleRecord


# Agent Models
class MaskPayload(BaseModel):
    """Region mask sent with an edit request"""
    base64: str = Field(..., min_length=1)
    reference_image_url: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    """Request to run the image workflow"""
    text: str = Field(..., min_length=1, max_length=4000)
    session_id: Optional[str] = Field(None, max_length=100)
    mask_data: Optional[MaskPayload] = None
    preferred_model: Optional[str] = Field(None, max_length=100)

    def to_user_input(self) -> UserInput:
        mask = None
        if self.mask_data is not None:
            mask = MaskData(
                base64=self.mask_data.base64,
                reference_image_url=self.mask_data.reference_image_url,
            )
        return UserInput(
            text=self.text.strip(),
            mask_data=mask,
            preferred_model=self.preferred_model,
        )


# Knowledge Models
class StyleResponse(BaseModel):
    """Style record without its embedding"""
    id: str
    label: str
    prompt_fragment: str
    description: Optional[str]
    tags: List[str]
    metadata: Dict[str, Any]
    is_system_protected: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, record: StyleRecord) -> "StyleResponse":
        return cls(
            **record.model_dump(
                mode="json",
                exclude={"embedding_vector", "created_at", "updated_at"},
            ),
            created_at=record.created_at.isoformat(),
            updated_at=record.updated_at.isoformat(),
        )


class StyleList(BaseModel):
    """List of styles"""
    styles: List[StyleResponse]
    total: int


class StyleSearchResult(BaseModel):
    """Single similarity search hit"""
    style_id: str
    label: str
    prompt_fragment: str
    similarity: float


class StyleSearchResponse(BaseModel):
    """Similarity search response"""
    query: str
    results: List[StyleSearchResult]


class BatchDeleteRequest(BaseModel):
    """Ids of styles to delete"""
    ids: List[str] = Field(..., min_length=1)
