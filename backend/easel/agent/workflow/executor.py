"""Executor stage

Calls the image backend for the classified action and describes the result
as UI widgets.
"""

import logging
from typing import List, Optional

from ...config import ArtifactConfig
from ...errors import ArtifactGenerationError, WorkflowInvariantError
from ...services.artifacts import derive_seed
from ...services.base import ArtifactService, EditOptions, GenerationOptions
from ..state import (
    ErrorInfo,
    IntentAction,
    Stage,
    StateUpdate,
    ThoughtLogEntry,
    UIDescriptor,
    WidgetType,
    WorkflowState,
)

logger = logging.getLogger(__name__)

ACTION_LABELS = {
    IntentAction.GENERATE: "Generating image",
    IntentAction.EDIT_REGION: "Editing the selected region",
    IntentAction.ADJUST_PARAMETERS: "Regenerating with adjusted parameters",
}


class TaskExecutor:
    """Runs the image task for the current intent"""

    stage = Stage.EXECUTING

    def __init__(self, artifacts: ArtifactService, config: Optional[ArtifactConfig] = None):
        """
        Initialize the executor.

        Args:
            artifacts: Image backend
            config: Image backend configuration (default model and size)
        """
        self.artifacts = artifacts
        self.config = config or ArtifactConfig()

    async def execute(self, state: WorkflowState) -> StateUpdate:
        """
        Produce an artifact for the current intent.

        Args:
            state: Snapshot of the workflow state

        Returns:
            Update with ``artifact_ref`` and UI descriptors, or ``error`` when
            the backend fails

        Raises:
            WorkflowInvariantError: If there is no actionable intent
        """
        intent = state.intent
        if intent is None or intent.action == IntentAction.UNKNOWN:
            raise WorkflowInvariantError("Executor reached without an actionable intent")

        if state.enhanced_prompt is not None:
            prompt = state.enhanced_prompt.final
        else:
            prompt = intent.prompt or state.user_input.text

        model = state.user_input.preferred_model or self.config.default_model
        seed = derive_seed(prompt)

        started = ThoughtLogEntry(
            stage=self.stage,
            message=f"{ACTION_LABELS[intent.action]}...",
            progress=50,
            metadata={"model": model, "seed": seed},
        )

        try:
            if intent.action == IntentAction.EDIT_REGION:
                mask = state.user_input.mask_data
                if mask is None:
                    raise ArtifactGenerationError("Region edit requires mask data")
                artifact_ref = await self.artifacts.edit(
                    prompt,
                    EditOptions(
                        model=state.user_input.preferred_model or self.config.edit_model,
                        image_url=mask.reference_image_url,
                        mask_base64=mask.base64,
                        size=self.config.default_size,
                        seed=seed,
                    ),
                )
            else:
                artifact_ref = await self.artifacts.generate(
                    prompt,
                    GenerationOptions(model=model, size=self.config.default_size, seed=seed),
                )
        except Exception as e:
            logger.error(f"Artifact generation failed: {e}")
            return StateUpdate(
                error=ErrorInfo(
                    code=ArtifactGenerationError.code,
                    message="Image generation failed",
                    stage=self.stage,
                    details=getattr(e, "details", None) or str(e),
                ),
                thought_log=[
                    started,
                    ThoughtLogEntry(stage=self.stage, message="Image generation failed", progress=80),
                ],
            )

        if not artifact_ref:
            logger.error("Image backend returned no artifact reference")
            return StateUpdate(
                thought_log=[
                    started,
                    ThoughtLogEntry(stage=self.stage, message="No image was produced", progress=80),
                ],
                metadata={"artifact_produced": False},
            )

        logger.info(f"Artifact ready: {artifact_ref}")
        return StateUpdate(
            artifact_ref=artifact_ref,
            ui_descriptors=self._describe(artifact_ref, intent.action),
            thought_log=[
                started,
                ThoughtLogEntry(stage=self.stage, message="Image ready", progress=80),
            ],
            metadata={"seed": seed, "model": model, "artifact_produced": True},
        )

    @staticmethod
    def _describe(artifact_ref: str, action: IntentAction) -> List[UIDescriptor]:
        done = "Region edited" if action == IntentAction.EDIT_REGION else "Image generated"
        return [
            UIDescriptor(
                widget_type=WidgetType.AGENT_MESSAGE,
                props={"state": "success", "text": f"{done}.", "isThinking": False},
                update_mode="append",
            ),
            UIDescriptor(
                widget_type=WidgetType.IMAGE_VIEW,
                props={"imageUrl": artifact_ref, "width": 800, "height": 600, "fit": "contain"},
                update_mode="append",
            ),
            UIDescriptor(
                widget_type=WidgetType.ACTION_PANEL,
                props={
                    "actions": [
                        {
                            "id": "regenerate_btn",
                            "label": "Regenerate",
                            "type": "button",
                            "buttonType": "primary",
                            "action": "regenerate",
                        }
                    ]
                },
                update_mode="append",
            ),
        ]
