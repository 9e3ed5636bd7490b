"""Workflow engine

Sequences the four stages and streams their progress:

                           ┌─────────────── retry ──────────────┐
                           ▼                                    │
    ┌──────────┐     ┌────────────┐     ┌───────────┐     ┌─────┴──────┐
    │ PLANNING │────▶│ AUGMENTING │────▶│ EXECUTING │────▶│ CRITIQUING │────▶ success
    └────┬─────┘     └────────────┘     └─────┬─────┘     └─────┬──────┘
         ▼                                    ▼                 ▼
       error                                error           exhausted

Routing is the ``TRANSITIONS`` table: for the stage that just ran, the first
rule whose predicate holds on the merged state picks the next stage or the
terminal outcome. Stages never route themselves.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from ...errors import WorkflowInvariantError
from ..events import (
    WorkflowEvent,
    WorkflowSummary,
    connection_event,
    error_event,
    events_for_update,
    stream_end_event,
)
from ..state import (
    ErrorInfo,
    IntentAction,
    Outcome,
    Stage,
    StateUpdate,
    UserInput,
    WorkflowState,
    merge_state,
)
from .augmenter import RetrievalAugmenter
from .critic import QualityCritic
from .executor import TaskExecutor
from .planner import IntentPlanner

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation checked by the engine between stages"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


Target = Union[Stage, Outcome]
Predicate = Callable[[WorkflowState], bool]


def _always(state: WorkflowState) -> bool:
    return True


def _has_error(state: WorkflowState) -> bool:
    return state.error is not None


def _planning_failed(state: WorkflowState) -> bool:
    return (
        state.error is not None
        or state.intent is None
        or state.intent.action == IntentAction.UNKNOWN
    )


def _has_artifact(state: WorkflowState) -> bool:
    # artifact_ref survives from earlier cycles, so route on this run's result
    return bool(state.artifact_ref) and bool(state.metadata.get("artifact_produced", True))


def _passed(state: WorkflowState) -> bool:
    return state.quality_check is not None and state.quality_check.passed


def _retry_requested(state: WorkflowState) -> bool:
    return bool(state.metadata.get("retry_requested"))


TRANSITIONS: Dict[Stage, List[Tuple[Predicate, Target]]] = {
    Stage.PLANNING: [
        (_planning_failed, Outcome.ERROR),
        (_always, Stage.AUGMENTING),
    ],
    Stage.AUGMENTING: [
        (_always, Stage.EXECUTING),
    ],
    Stage.EXECUTING: [
        (_has_error, Outcome.ERROR),
        (_has_artifact, Stage.CRITIQUING),
        (_always, Outcome.ERROR),
    ],
    Stage.CRITIQUING: [
        (_has_error, Outcome.ERROR),
        (_passed, Outcome.SUCCESS),
        (_retry_requested, Stage.AUGMENTING),
        (_always, Outcome.EXHAUSTED),
    ],
}


def next_step(stage: Stage, state: WorkflowState) -> Target:
    """Next stage or terminal outcome after ``stage`` has run"""
    for predicate, target in TRANSITIONS[stage]:
        if predicate(state):
            return target
    raise WorkflowInvariantError(f"No transition out of {stage.value}")


SUMMARY_MESSAGES = {
    Outcome.SUCCESS: "Task completed",
    Outcome.ERROR: "Task failed",
    Outcome.EXHAUSTED: "Retry limit reached, returning the last result",
    Outcome.CANCELLED: "Task cancelled",
}


class WorkflowExecution:
    """
    One run of the workflow for one request.

    Owns the workflow state; ``events()`` drives the stages and yields
    events as they are produced. After the stream ends, ``outcome`` and
    ``state`` describe the result.
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        state: WorkflowState,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.engine = engine
        self.state = state
        self.cancel_token = cancel_token or CancellationToken()
        self.outcome: Optional[Outcome] = None
        self.stage_calls: Dict[Stage, int] = {stage: 0 for stage in Stage}

    @property
    def session_id(self) -> str:
        return self.state.session_id

    async def events(self) -> AsyncIterator[WorkflowEvent]:
        """Run the workflow, yielding events in emission order"""
        if self.outcome is not None:
            raise RuntimeError("Workflow execution has already run")

        state = self.state
        logger.info(f"Starting workflow {state.session_id}")
        yield connection_event(state.session_id)

        stage = Stage.PLANNING
        while True:
            if self.cancel_token.cancelled:
                logger.info(f"Workflow {state.session_id} cancelled before {stage.value}")
                self.outcome = Outcome.CANCELLED
                break

            self.stage_calls[stage] += 1
            logger.debug(f"Workflow {state.session_id} entering {stage.value}")

            try:
                update = await self.engine.stages[stage].execute(state.model_copy(deep=True))
            except Exception as e:
                logger.error(f"Stage {stage.value} raised: {e}", exc_info=True)
                merge_state(
                    state,
                    StateUpdate(
                        error=ErrorInfo(
                            code=WorkflowInvariantError.code,
                            message="Workflow execution failed",
                            stage=stage,
                            details=str(e),
                        )
                    ),
                )
                self.outcome = Outcome.ERROR
                break

            merge_state(state, update)
            for event in events_for_update(update):
                yield event

            target = next_step(stage, state)
            if isinstance(target, Outcome):
                self.outcome = target
                break

            logger.info(f"Workflow {state.session_id}: {stage.value} -> {target.value}")
            stage = target

        if self.outcome == Outcome.ERROR:
            if state.error is None:
                merge_state(state, StateUpdate(error=self._missing_result_error(stage)))
            yield error_event(state.error)

        logger.info(f"Workflow {state.session_id} finished: {self.outcome.value}")
        yield stream_end_event(state.session_id, self.summary())

    def summary(self) -> WorkflowSummary:
        state = self.state
        return WorkflowSummary(
            outcome=self.outcome,
            message=SUMMARY_MESSAGES[self.outcome],
            retry_count=state.retry_count,
            artifact_ref=state.artifact_ref,
            score=state.quality_check.score if state.quality_check else None,
        )

    @staticmethod
    def _missing_result_error(stage: Stage) -> ErrorInfo:
        if stage == Stage.PLANNING:
            return ErrorInfo(
                code="INTENT_UNKNOWN",
                message="Could not determine what to do with the request",
                stage=stage,
            )
        return ErrorInfo(
            code="ARTIFACT_MISSING",
            message="The image backend produced no result",
            stage=stage,
        )


class WorkflowEngine:
    """
    Runs planner, augmenter, executor and critic as a bounded-retry workflow.

    The engine holds no per-request state, so one instance serves any number
    of concurrent executions.
    """

    def __init__(
        self,
        planner: IntentPlanner,
        augmenter: RetrievalAugmenter,
        executor: TaskExecutor,
        critic: QualityCritic,
    ):
        """
        Initialize the engine.

        Args:
            planner: Planning stage
            augmenter: Retrieval augmentation stage
            executor: Execution stage
            critic: Quality assessment stage
        """
        self.stages = {
            Stage.PLANNING: planner,
            Stage.AUGMENTING: augmenter,
            Stage.EXECUTING: executor,
            Stage.CRITIQUING: critic,
        }

    def start(
        self,
        user_input: UserInput,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowExecution:
        """Create an execution for one request; iterate ``events()`` to run it"""
        state = WorkflowState(user_input=user_input)
        if session_id:
            state.session_id = session_id
        return WorkflowExecution(self, state, cancel_token)

    async def stream(
        self,
        user_input: UserInput,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[WorkflowEvent]:
        """Run a request and yield its events"""
        execution = self.start(user_input, session_id, cancel_token)
        async for event in execution.events():
            yield event

    async def run(
        self,
        user_input: UserInput,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[WorkflowExecution, List[WorkflowEvent]]:
        """Run a request to completion, collecting every event"""
        execution = self.start(user_input, session_id, cancel_token)
        events = [event async for event in execution.events()]
        return execution, events
