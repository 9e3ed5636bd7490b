"""Workflow state, partial updates, and the merge policies that combine them"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Stage(str, Enum):
    """Workflow stages"""
    PLANNING = "planning"
    AUGMENTING = "augmenting"
    EXECUTING = "executing"
    CRITIQUING = "critiquing"


class Outcome(str, Enum):
    """Terminal outcomes of a workflow execution"""
    SUCCESS = "success"
    ERROR = "error"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class IntentAction(str, Enum):
    """Actions the classifier may choose"""
    GENERATE = "generate"
    EDIT_REGION = "edit_region"
    ADJUST_PARAMETERS = "adjust_parameters"
    UNKNOWN = "unknown"


class WidgetType(str, Enum):
    """UI widgets the executor can describe"""
    AGENT_MESSAGE = "AgentMessage"
    IMAGE_VIEW = "ImageView"
    ACTION_PANEL = "ActionPanel"


class MaskData(BaseModel):
    """Region mask for an edit request"""
    base64: str
    reference_image_url: str


class UserInput(BaseModel):
    """What the caller submitted"""
    text: str
    mask_data: Optional[MaskData] = None
    preferred_model: Optional[str] = None


class Intent(BaseModel):
    """Structured intent produced by the planner"""
    action: IntentAction
    subject: Optional[str] = None
    style: Optional[str] = None
    prompt: str = ""
    confidence: float = 0.0
    raw_response: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, value))


class RetrievedStyle(BaseModel):
    """A style reference that was folded into the prompt"""
    style: str
    prompt_fragment: str
    similarity: float = Field(ge=0.0, le=1.0)


class EnhancedPrompt(BaseModel):
    """Prompt after retrieval augmentation"""
    original: str
    retrieved: List[RetrievedStyle] = Field(default_factory=list)
    final: str


class QualityCheck(BaseModel):
    """Critic verdict for the current artifact"""
    passed: bool
    score: float = Field(ge=0.0, le=1.0)
    feedback: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    assessed: bool = True  # False when the critic failed open


class UIDescriptor(BaseModel):
    """Declarative description of a UI widget to render"""
    id: str = Field(default_factory=lambda: f"ui_{uuid4().hex[:12]}")
    widget_type: WidgetType
    props: Dict[str, Any] = Field(default_factory=dict)
    update_mode: Optional[str] = None  # "append", "replace" or "update"
    target_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ThoughtLogEntry(BaseModel):
    """Human-readable progress note from a stage"""
    stage: Stage
    message: str
    timestamp: datetime = Field(default_factory=utc_now)
    progress: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class ErrorInfo(BaseModel):
    """Fatal error recorded on the state"""
    code: str
    message: str
    stage: Optional[Stage] = None
    details: Optional[str] = None


class WorkflowState(BaseModel):
    """The single record threaded through every stage of one execution"""
    user_input: UserInput
    session_id: str = Field(default_factory=lambda: f"session_{uuid4().hex[:16]}")
    started_at: datetime = Field(default_factory=utc_now)
    intent: Optional[Intent] = None
    enhanced_prompt: Optional[EnhancedPrompt] = None
    artifact_ref: Optional[str] = None
    quality_check: Optional[QualityCheck] = None
    ui_descriptors: List[UIDescriptor] = Field(default_factory=list)
    thought_log: List[ThoughtLogEntry] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=lambda: {"retry_count": 0})
    error: Optional[ErrorInfo] = None

    @property
    def retry_count(self) -> int:
        return int(self.metadata.get("retry_count", 0))


class StateUpdate(BaseModel):
    """
    Partial update returned by a stage.

    Only fields the stage explicitly sets are merged; an omitted field never
    overwrites the current value.
    """
    intent: Optional[Intent] = None
    enhanced_prompt: Optional[EnhancedPrompt] = None
    artifact_ref: Optional[str] = None
    quality_check: Optional[QualityCheck] = None
    ui_descriptors: List[UIDescriptor] = Field(default_factory=list)
    thought_log: List[ThoughtLogEntry] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[ErrorInfo] = None


def replace_latest(current: Any, incoming: Any) -> Any:
    return current if incoming is None else incoming


def append(current: List[Any], incoming: List[Any]) -> List[Any]:
    return [*current, *incoming]


def shallow_merge(current: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    return {**current, **incoming}


MergePolicy = Callable[[Any, Any], Any]

MERGE_POLICIES: Dict[str, MergePolicy] = {
    "intent": replace_latest,
    "enhanced_prompt": replace_latest,
    "artifact_ref": replace_latest,
    "quality_check": replace_latest,
    "error": replace_latest,
    "ui_descriptors": append,
    "thought_log": append,
    "metadata": shallow_merge,
}


def merge_state(state: WorkflowState, update: StateUpdate) -> WorkflowState:
    """
    Apply a stage update to the workflow state in place.

    Args:
        state: The live workflow state
        update: Partial update returned by a stage

    Returns:
        The same state object, for chaining
    """
    for field_name in update.model_fields_set:
        policy = MERGE_POLICIES[field_name]
        merged = policy(getattr(state, field_name), getattr(update, field_name))
        setattr(state, field_name, merged)
    return state
