"""Planner stage

Turns the raw request into a structured intent. A request carrying a mask is
always a region edit and skips the classifier entirely.
"""

import logging

from ...errors import ClassificationError
from ...services.base import LanguageClassifier
from ..state import (
    ErrorInfo,
    Intent,
    IntentAction,
    Stage,
    StateUpdate,
    ThoughtLogEntry,
    WorkflowState,
)

logger = logging.getLogger(__name__)

MASK_INTENT_CONFIDENCE = 0.9


class IntentPlanner:
    """Classifies the user's request into an intent"""

    stage = Stage.PLANNING

    def __init__(self, classifier: LanguageClassifier):
        """
        Initialize the planner.

        Args:
            classifier: Language classifier used for requests without a mask
        """
        self.classifier = classifier

    async def execute(self, state: WorkflowState) -> StateUpdate:
        """
        Produce the intent for the current request.

        Args:
            state: Snapshot of the workflow state

        Returns:
            Update with ``intent``, one thought-log entry, and ``error`` on failure
        """
        user_input = state.user_input

        if user_input.mask_data is not None:
            intent = Intent(
                action=IntentAction.EDIT_REGION,
                prompt=user_input.text,
                confidence=MASK_INTENT_CONFIDENCE,
                raw_response="mask-forced",
            )
            logger.info("Mask present, planning a region edit")
            return StateUpdate(
                intent=intent,
                thought_log=[
                    ThoughtLogEntry(
                        stage=self.stage,
                        message="Mask detected, treating the request as a region edit",
                        progress=10,
                        metadata={"action": intent.action.value, "confidence": intent.confidence},
                    )
                ],
            )

        try:
            intent = await self.classifier.classify(user_input.text)
        except Exception as e:
            logger.error(f"Intent classification failed: {e}")
            details = e.details if isinstance(e, ClassificationError) and e.details else str(e)
            return StateUpdate(
                intent=Intent(
                    action=IntentAction.UNKNOWN,
                    prompt=user_input.text,
                    confidence=0.0,
                    raw_response="",
                ),
                error=ErrorInfo(
                    code=ClassificationError.code,
                    message="Intent classification failed",
                    stage=self.stage,
                    details=details,
                ),
                thought_log=[
                    ThoughtLogEntry(
                        stage=self.stage,
                        message="Could not understand the request",
                        progress=10,
                    )
                ],
            )

        return StateUpdate(
            intent=intent,
            thought_log=[
                ThoughtLogEntry(
                    stage=self.stage,
                    message=(
                        f"Recognized intent: {intent.action.value}. "
                        f"Subject: {intent.subject or 'unspecified'}, "
                        f"style: {intent.style or 'unspecified'}"
                    ),
                    progress=10,
                    metadata={"action": intent.action.value, "confidence": intent.confidence},
                )
            ],
        )
