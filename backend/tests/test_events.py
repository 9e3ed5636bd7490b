"""
Tests for event serialization:
- camelCase payload keys on the wire
- discriminated parsing
- server-sent event framing
"""

import json

from easel.agent.events import (
    StreamEndEvent,
    WorkflowSummary,
    events_for_update,
    parse_event,
    stream_end_event,
    ui_component_event,
)
from easel.agent.state import (
    EnhancedPrompt,
    Outcome,
    RetrievedStyle,
    Stage,
    StateUpdate,
    ThoughtLogEntry,
    UIDescriptor,
    WidgetType,
)


class TestWireFormat:
    """Test event payload serialization."""

    def test_ui_component_uses_camel_case(self):
        descriptor = UIDescriptor(
            widget_type=WidgetType.IMAGE_VIEW,
            props={"imageUrl": "https://images.test/1.png"},
            update_mode="append",
        )
        wire = ui_component_event(descriptor).to_wire()

        assert wire["type"] == "gen_ui_component"
        assert wire["data"]["widgetType"] == "ImageView"
        assert wire["data"]["updateMode"] == "append"
        assert "targetId" not in wire["data"]

    def test_stream_end_summary(self):
        summary = WorkflowSummary(outcome=Outcome.EXHAUSTED, message="done", retry_count=3)
        wire = stream_end_event("session_1", summary).to_wire()

        assert wire["data"]["sessionId"] == "session_1"
        assert wire["data"]["summary"]["outcome"] == "exhausted"
        assert wire["data"]["summary"]["retryCount"] == 3

    def test_parse_event_picks_variant(self):
        summary = WorkflowSummary(outcome=Outcome.SUCCESS, message="ok")
        event = parse_event(stream_end_event("session_1", summary).to_wire())
        assert isinstance(event, StreamEndEvent)
        assert event.data.summary.outcome == Outcome.SUCCESS

    def test_sse_frame(self):
        summary = WorkflowSummary(outcome=Outcome.SUCCESS, message="ok")
        frame = stream_end_event("session_1", summary).to_sse()

        header, data, blank, end = frame.split("\n")
        assert header == "event: stream_end"
        assert json.loads(data[len("data: "):])["data"]["sessionId"] == "session_1"
        assert blank == "" and end == ""


class TestEventsForUpdate:
    """Test per-stage event ordering."""

    def test_thoughts_then_prompt_then_widgets(self):
        update = StateUpdate(
            ui_descriptors=[UIDescriptor(widget_type=WidgetType.AGENT_MESSAGE)],
            enhanced_prompt=EnhancedPrompt(
                original="cat",
                retrieved=[RetrievedStyle(style="Cyberpunk", prompt_fragment="neon", similarity=0.8)],
                final="cat, neon",
            ),
            thought_log=[
                ThoughtLogEntry(stage=Stage.AUGMENTING, message="a"),
                ThoughtLogEntry(stage=Stage.AUGMENTING, message="b"),
            ],
        )
        events = events_for_update(update)

        assert [e.type for e in events] == ["thought_log", "thought_log", "enhanced_prompt", "gen_ui_component"]
        assert events[2].to_wire()["data"]["retrieved"][0] == {
            "style": "Cyberpunk",
            "prompt": "neon",
            "similarity": 0.8,
        }

    def test_empty_update_has_no_events(self):
        assert events_for_update(StateUpdate()) == []
