"""Streaming events emitted while a workflow runs

Every event is an envelope ``{type, timestamp, data}``. The set of event
types is closed: ``WorkflowEvent`` is a discriminated union on ``type`` and
consumers can match on it exhaustively. Payloads serialize with camelCase keys.
"""

import json
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .state import (
    EnhancedPrompt,
    ErrorInfo,
    Outcome,
    StateUpdate,
    ThoughtLogEntry,
    UIDescriptor,
    utc_now,
)


class EventPayload(BaseModel):
    """Base for event payloads, serialized with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectionData(EventPayload):
    status: Literal["connected"] = "connected"
    session_id: str


class ThoughtLogData(EventPayload):
    stage: str
    message: str
    progress: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class RetrievedStyleData(EventPayload):
    style: str
    prompt: str
    similarity: float


class EnhancedPromptData(EventPayload):
    original: str
    retrieved: List[RetrievedStyleData] = Field(default_factory=list)
    final: str


class GenUIComponentData(EventPayload):
    id: Optional[str] = None
    widget_type: str
    props: Dict[str, Any] = Field(default_factory=dict)
    update_mode: Optional[str] = None
    target_id: Optional[str] = None


class ErrorData(EventPayload):
    code: str
    message: str
    details: Optional[str] = None


class WorkflowSummary(EventPayload):
    """Outcome of a finished execution"""
    outcome: Outcome
    message: str
    retry_count: int = 0
    artifact_ref: Optional[str] = None
    score: Optional[float] = None


class StreamEndData(EventPayload):
    session_id: str
    summary: WorkflowSummary


class BaseEvent(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase payload keys"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_sse(self) -> str:
        """Server-sent event frame"""
        return f"event: {self.type}\ndata: {json.dumps(self.to_wire(), ensure_ascii=False)}\n\n"


class ConnectionEvent(BaseEvent):
    type: Literal["connection"] = "connection"
    data: ConnectionData


class ThoughtLogEvent(BaseEvent):
    type: Literal["thought_log"] = "thought_log"
    data: ThoughtLogData


class EnhancedPromptEvent(BaseEvent):
    type: Literal["enhanced_prompt"] = "enhanced_prompt"
    data: EnhancedPromptData


class GenUIComponentEvent(BaseEvent):
    type: Literal["gen_ui_component"] = "gen_ui_component"
    data: GenUIComponentData


class ErrorEvent(BaseEvent):
    type: Literal["error"] = "error"
    data: ErrorData


class StreamEndEvent(BaseEvent):
    type: Literal["stream_end"] = "stream_end"
    data: StreamEndData


WorkflowEvent = Annotated[
    Union[
        ConnectionEvent,
        ThoughtLogEvent,
        EnhancedPromptEvent,
        GenUIComponentEvent,
        ErrorEvent,
        StreamEndEvent,
    ],
    Field(discriminator="type"),
]

workflow_event_adapter = TypeAdapter(WorkflowEvent)


def parse_event(payload: Dict[str, Any]) -> WorkflowEvent:
    """Parse a wire dict back into a typed event"""
    return workflow_event_adapter.validate_python(payload)


def connection_event(session_id: str) -> ConnectionEvent:
    return ConnectionEvent(data=ConnectionData(session_id=session_id))


def thought_log_event(entry: ThoughtLogEntry) -> ThoughtLogEvent:
    return ThoughtLogEvent(
        timestamp=entry.timestamp,
        data=ThoughtLogData(
            stage=entry.stage.value,
            message=entry.message,
            progress=entry.progress,
            metadata=entry.metadata,
        ),
    )


def enhanced_prompt_event(prompt: EnhancedPrompt) -> EnhancedPromptEvent:
    return EnhancedPromptEvent(
        data=EnhancedPromptData(
            original=prompt.original,
            retrieved=[
                RetrievedStyleData(
                    style=item.style,
                    prompt=item.prompt_fragment,
                    similarity=item.similarity,
                )
                for item in prompt.retrieved
            ],
            final=prompt.final,
        )
    )


def ui_component_event(descriptor: UIDescriptor) -> GenUIComponentEvent:
    return GenUIComponentEvent(
        timestamp=descriptor.timestamp,
        data=GenUIComponentData(
            id=descriptor.id,
            widget_type=descriptor.widget_type.value,
            props=descriptor.props,
            update_mode=descriptor.update_mode,
            target_id=descriptor.target_id,
        ),
    )


def error_event(error: ErrorInfo) -> ErrorEvent:
    return ErrorEvent(
        data=ErrorData(code=error.code, message=error.message, details=error.details)
    )


def stream_end_event(session_id: str, summary: WorkflowSummary) -> StreamEndEvent:
    return StreamEndEvent(data=StreamEndData(session_id=session_id, summary=summary))


def events_for_update(update: StateUpdate) -> List[WorkflowEvent]:
    """
    Events for one stage's update, in emission order.

    Thought-log entries come first, then the enhanced prompt, then UI
    descriptors. Errors are emitted by the engine when it terminates.
    """
    events: List[WorkflowEvent] = [thought_log_event(entry) for entry in update.thought_log]
    if update.enhanced_prompt is not None:
        events.append(enhanced_prompt_event(update.enhanced_prompt))
    events.extend(ui_component_event(descriptor) for descriptor in update.ui_descriptors)
    return events
