"""
End-to-end workflow tests against the in-memory style index:
- happy path, region edit, retry exhaustion and degraded retrieval
- error paths, each ending with exactly one error event
- event stream shape and cancellation
"""

import asyncio

import pytest

from conftest import FakeArtifactService, FakeClassifier, build_engine, make_intent

from easel.agent.events import StreamEndEvent
from easel.agent.state import (
    Intent,
    IntentAction,
    MaskData,
    Outcome,
    QualityCheck,
    Stage,
    UserInput,
    WorkflowState,
)
from easel.agent.workflow import CancellationToken, next_step
from easel.config import Config, CriticConfig
from easel.errors import ArtifactGenerationError, ClassificationError


def _types(events):
    return [event.type for event in events]


def _errors(events):
    return [event for event in events if event.type == "error"]


# =============================================================================
# Transition Table
# =============================================================================

class TestTransitions:
    """Test routing predicates in isolation."""

    def _state(self, **fields) -> WorkflowState:
        state = WorkflowState(user_input=UserInput(text="cat"))
        for name, value in fields.items():
            setattr(state, name, value)
        return state

    def test_unknown_intent_terminates(self):
        state = self._state(intent=Intent(action=IntentAction.UNKNOWN))
        assert next_step(Stage.PLANNING, state) == Outcome.ERROR

    def test_known_intent_augments(self):
        assert next_step(Stage.PLANNING, self._state(intent=make_intent())) == Stage.AUGMENTING

    def test_augmenting_always_executes(self):
        assert next_step(Stage.AUGMENTING, self._state()) == Stage.EXECUTING

    def test_executing_without_artifact_terminates(self):
        assert next_step(Stage.EXECUTING, self._state()) == Outcome.ERROR

    def test_stale_artifact_from_earlier_cycle_terminates(self):
        state = self._state(
            artifact_ref="https://images.test/1.png",
            metadata={"retry_count": 1, "artifact_produced": False},
        )
        assert next_step(Stage.EXECUTING, state) == Outcome.ERROR

    def test_critic_retry_decision_is_followed(self):
        failed = QualityCheck(passed=False, score=0.2)
        retry = self._state(quality_check=failed, metadata={"retry_count": 3, "retry_requested": True})
        done = self._state(quality_check=failed, metadata={"retry_count": 1, "retry_requested": False})

        assert next_step(Stage.CRITIQUING, retry) == Stage.AUGMENTING
        assert next_step(Stage.CRITIQUING, done) == Outcome.EXHAUSTED


# =============================================================================
# Scenarios
# =============================================================================

class TestScenarios:
    """Test complete workflow executions."""

    @pytest.mark.asyncio
    async def test_happy_path_with_style(self, style_index):
        """Styled generate request retrieves the matching style and passes review."""
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, FakeClassifier(make_intent()), artifacts)

        execution, events = await engine.run(UserInput(text="画一只赛博朋克风格的猫"))
        state = execution.state

        assert execution.outcome == Outcome.SUCCESS
        assert [r.style for r in state.enhanced_prompt.retrieved] == ["Cyberpunk"]
        assert state.enhanced_prompt.retrieved[0].similarity >= 0.6
        assert "neon lights" in state.enhanced_prompt.final
        assert state.enhanced_prompt.final.startswith("画一只赛博朋克风格的猫, ")
        assert artifacts.generate_calls[0]["prompt"] == state.enhanced_prompt.final
        assert state.artifact_ref == "https://images.test/1.png"
        assert state.quality_check.passed is True
        assert state.retry_count == 0

        assert _types(events) == [
            "connection",
            "thought_log",
            "thought_log",
            "enhanced_prompt",
            "thought_log",
            "thought_log",
            "gen_ui_component",
            "gen_ui_component",
            "gen_ui_component",
            "thought_log",
            "thought_log",
            "stream_end",
        ]
        end = events[-1]
        assert end.data.summary.outcome == Outcome.SUCCESS
        assert end.data.summary.artifact_ref == state.artifact_ref
        assert end.data.session_id == state.session_id

    @pytest.mark.asyncio
    async def test_mask_edit_skips_classifier(self, style_index):
        classifier = FakeClassifier(make_intent())
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, classifier, artifacts)
        mask = MaskData(base64="iVBORw0KGgo=", reference_image_url="https://images.test/ref.png")

        execution, events = await engine.run(UserInput(text="make the sky red", mask_data=mask))

        assert classifier.calls == []
        assert execution.state.intent.action == IntentAction.EDIT_REGION
        assert len(artifacts.edit_calls) == 1
        assert artifacts.generate_calls == []
        assert artifacts.edit_calls[0]["options"].image_url == "https://images.test/ref.png"

        thoughts = [event for event in events if event.type == "thought_log"]
        assert thoughts[0].data.stage == "planning"
        assert execution.outcome == Outcome.SUCCESS

    @pytest.mark.asyncio
    async def test_passing_review_runs_executor_once(self, style_index):
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, FakeClassifier(make_intent(confidence=0.95)), artifacts)

        execution, events = await engine.run(UserInput(text="cat"))

        assert artifacts.total_calls == 1
        assert execution.stage_calls[Stage.EXECUTING] == 1
        assert execution.state.retry_count == 0
        assert events[-1].data.summary.outcome == Outcome.SUCCESS
        assert _errors(events) == []

    @pytest.mark.asyncio
    async def test_retries_until_exhausted(self, style_index):
        """A review that always fails runs max_retry_count + 1 cycles."""
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, FakeClassifier(make_intent(confidence=0.1)), artifacts)

        execution, events = await engine.run(UserInput(text="画一只赛博朋克风格的猫"))

        assert execution.outcome == Outcome.EXHAUSTED
        assert artifacts.total_calls == 4
        assert execution.stage_calls[Stage.AUGMENTING] == 4
        assert execution.stage_calls[Stage.CRITIQUING] == 4
        assert execution.state.retry_count == 3
        assert execution.state.quality_check.passed is False
        assert _errors(events) == []

        end = events[-1]
        assert isinstance(end, StreamEndEvent)
        assert end.data.summary.outcome == Outcome.EXHAUSTED
        assert end.data.summary.retry_count == 3
        assert end.data.summary.artifact_ref == "https://images.test/4.png"

    @pytest.mark.asyncio
    async def test_retry_bound_is_configurable(self, style_index):
        artifacts = FakeArtifactService()
        config = Config(critic=CriticConfig(max_retry_count=1))
        engine = build_engine(style_index, FakeClassifier(make_intent(confidence=0.1)), artifacts, config)

        execution, _ = await engine.run(UserInput(text="cat"))

        assert artifacts.total_calls == 2
        assert execution.state.retry_count == 1

    @pytest.mark.asyncio
    async def test_no_matching_style_uses_original_prompt(self, style_index):
        artifacts = FakeArtifactService()
        intent = make_intent(subject=None, style=None, prompt="zzz")
        engine = build_engine(style_index, FakeClassifier(intent), artifacts)

        execution, events = await engine.run(UserInput(text="qqq"))
        state = execution.state

        assert state.enhanced_prompt.retrieved == []
        assert state.enhanced_prompt.final == "qqq"
        assert artifacts.generate_calls[0]["prompt"] == "qqq"
        assert execution.outcome == Outcome.SUCCESS
        assert _errors(events) == []

    @pytest.mark.asyncio
    async def test_empty_index_degrades(self, empty_index):
        artifacts = FakeArtifactService()
        engine = build_engine(empty_index, FakeClassifier(make_intent()), artifacts)

        execution, _ = await engine.run(UserInput(text="画一只赛博朋克风格的猫"))

        assert execution.state.enhanced_prompt.final == "画一只赛博朋克风格的猫"
        assert execution.outcome == Outcome.SUCCESS


# =============================================================================
# Error Paths
# =============================================================================

class TestErrorPaths:
    """Test terminal errors."""

    @pytest.mark.asyncio
    async def test_classification_failure(self, style_index, embedder):
        classifier = FakeClassifier(error=ClassificationError("parse", details="Expecting value"))
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, classifier, artifacts)
        embeds_before = len(embedder.calls)

        execution, events = await engine.run(UserInput(text="???"))

        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "INTENT_CLASSIFICATION_FAILED"
        assert errors[0].data.details == "Expecting value"
        assert events[-1].data.summary.outcome == Outcome.ERROR
        assert execution.stage_calls[Stage.AUGMENTING] == 0
        assert len(embedder.calls) == embeds_before
        assert artifacts.total_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_intent(self, style_index):
        engine = build_engine(
            style_index,
            FakeClassifier(make_intent(action=IntentAction.UNKNOWN, style=None)),
            FakeArtifactService(),
        )

        execution, events = await engine.run(UserInput(text="what's the weather"))

        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "INTENT_UNKNOWN"
        assert execution.outcome == Outcome.ERROR

    @pytest.mark.asyncio
    async def test_execution_failure(self, style_index):
        artifacts = FakeArtifactService(error=ArtifactGenerationError("down", details="503"))
        engine = build_engine(style_index, FakeClassifier(make_intent()), artifacts)

        execution, events = await engine.run(UserInput(text="cat"))

        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "EXECUTION_FAILED"
        assert execution.stage_calls[Stage.CRITIQUING] == 0
        assert _types(events)[-2:] == ["error", "stream_end"]

    @pytest.mark.asyncio
    async def test_missing_artifact(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent()), FakeArtifactService(result=None))

        _, events = await engine.run(UserInput(text="cat"))

        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "ARTIFACT_MISSING"

    @pytest.mark.asyncio
    async def test_missing_artifact_on_retry(self, style_index):
        """A retry cycle that produces nothing fails instead of re-reviewing the old image."""

        class FirstImageOnly(FakeArtifactService):
            def _result(self):
                return "https://images.test/1.png" if self.total_calls == 1 else ""

        artifacts = FirstImageOnly()
        engine = build_engine(style_index, FakeClassifier(make_intent(confidence=0.1)), artifacts)

        execution, events = await engine.run(UserInput(text="cat"))

        assert execution.outcome == Outcome.ERROR
        assert len(artifacts.generate_calls) == 2
        assert execution.state.retry_count == 1
        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "ARTIFACT_MISSING"
        assert _types(events)[-2:] == ["error", "stream_end"]

    @pytest.mark.asyncio
    async def test_unexpected_stage_exception(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent()), FakeArtifactService())

        class Exploding:
            async def execute(self, state):
                raise KeyError("boom")

        engine.stages[Stage.AUGMENTING] = Exploding()
        execution, events = await engine.run(UserInput(text="cat"))

        errors = _errors(events)
        assert len(errors) == 1
        assert errors[0].data.code == "WORKFLOW_ERROR"
        assert "boom" in errors[0].data.details
        assert execution.state.error.stage == Stage.AUGMENTING
        assert events[-1].data.summary.outcome == Outcome.ERROR


# =============================================================================
# Event Stream
# =============================================================================

class TestEventStream:
    """Test stream-level properties."""

    @pytest.mark.asyncio
    async def test_thought_log_events_mirror_state(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent(confidence=0.1)), FakeArtifactService())

        execution, events = await engine.run(UserInput(text="cat"))

        thoughts = [event.data.message for event in events if event.type == "thought_log"]
        assert thoughts == [entry.message for entry in execution.state.thought_log]

    @pytest.mark.asyncio
    async def test_stream_is_bracketed(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent()), FakeArtifactService())

        events = [event async for event in engine.stream(UserInput(text="cat"), session_id="session_abc")]

        assert events[0].type == "connection"
        assert events[0].data.session_id == "session_abc"
        assert events[-1].type == "stream_end"
        assert _types(events).count("stream_end") == 1

    @pytest.mark.asyncio
    async def test_execution_runs_once(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent()), FakeArtifactService())
        execution, _ = await engine.run(UserInput(text="cat"))

        with pytest.raises(RuntimeError):
            async for _ in execution.events():
                pass

    @pytest.mark.asyncio
    async def test_concurrent_executions_are_isolated(self, style_index):
        engine = build_engine(style_index, FakeClassifier(make_intent()), FakeArtifactService())
        (first, _), (second, _) = await asyncio.gather(
            engine.run(UserInput(text="cat one")),
            engine.run(UserInput(text="cat two")),
        )

        assert first.state.session_id != second.state.session_id
        assert first.state.enhanced_prompt.original == "cat one"
        assert second.state.enhanced_prompt.original == "cat two"


# =============================================================================
# Cancellation
# =============================================================================

class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, style_index):
        classifier = FakeClassifier(make_intent())
        engine = build_engine(style_index, classifier, FakeArtifactService())
        token = CancellationToken()
        token.cancel()

        execution, events = await engine.run(UserInput(text="cat"), cancel_token=token)

        assert _types(events) == ["connection", "stream_end"]
        assert execution.outcome == Outcome.CANCELLED
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_cancel_between_stages(self, style_index):
        token = CancellationToken()

        class CancellingClassifier(FakeClassifier):
            async def classify(self, text):
                token.cancel()
                return await super().classify(text)

        artifacts = FakeArtifactService()
        engine = build_engine(style_index, CancellingClassifier(make_intent()), artifacts)

        execution, events = await engine.run(UserInput(text="cat"), cancel_token=token)

        assert execution.outcome == Outcome.CANCELLED
        assert execution.stage_calls[Stage.PLANNING] == 1
        assert execution.stage_calls[Stage.AUGMENTING] == 0
        assert artifacts.total_calls == 0
        assert events[-1].data.summary.outcome == Outcome.CANCELLED

    @pytest.mark.asyncio
    async def test_closing_the_stream_stops_the_engine(self, style_index):
        artifacts = FakeArtifactService()
        engine = build_engine(style_index, FakeClassifier(make_intent()), artifacts)
        execution = engine.start(UserInput(text="cat"))

        stream = execution.events()
        async for event in stream:
            if event.type == "enhanced_prompt":
                break
        await stream.aclose()

        assert artifacts.total_calls == 0
        assert execution.outcome is None
