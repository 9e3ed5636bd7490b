"""Critic stage

Scores the artifact and decides whether another augment/execute cycle is
allowed. The retry decision is recorded in ``metadata.retry_requested`` and
the engine routes on it as-is.

Scoring is heuristic by default: the classifier's confidence plus a small
random perturbation. With external assessment enabled, the assessment
service's verdict is used when it is well formed; anything else falls back to
the heuristic.
"""

import logging
import math
import random
from typing import Any, Dict, Optional

from ...config import CriticConfig
from ...services.base import AssessmentService
from ..state import (
    Intent,
    QualityCheck,
    Stage,
    StateUpdate,
    ThoughtLogEntry,
    WorkflowState,
)

logger = logging.getLogger(__name__)

FAIL_OPEN_SCORE = 0.7
DEFAULT_SCORE = 0.5
HEURISTIC_SUGGESTIONS = [
    "Try adjusting the style strength",
    "Regenerate the image",
    "Refine the prompt",
]


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class QualityCritic:
    """Assesses artifact quality and grants bounded retries"""

    stage = Stage.CRITIQUING

    def __init__(
        self,
        config: Optional[CriticConfig] = None,
        assessment: Optional[AssessmentService] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the critic.

        Args:
            config: Thresholds, retry bound and perturbation range
            assessment: External assessment service, used only when enabled
            rng: Random source for the heuristic perturbation
        """
        self.config = config or CriticConfig()
        self.assessment = assessment
        self.rng = rng or random.Random()

    async def execute(self, state: WorkflowState) -> StateUpdate:
        retry_count = state.retry_count
        started = ThoughtLogEntry(
            stage=self.stage,
            message="Reviewing image quality...",
            progress=90,
        )

        if not state.artifact_ref or state.intent is None:
            logger.warning("Nothing to review, accepting result")
            return self._fail_open(started, retry_count, "Nothing to review")

        try:
            check = await self._assess(state.intent, state.artifact_ref)
        except Exception as e:
            logger.error(f"Quality review failed, accepting result: {e}", exc_info=True)
            return self._fail_open(started, retry_count, "Quality review failed")

        should_retry = not check.passed and retry_count < self.config.max_retry_count
        if should_retry:
            retry_count += 1

        if check.passed:
            verdict = "passed"
        elif should_retry:
            verdict = f"failed, retry {retry_count}/{self.config.max_retry_count}"
        else:
            verdict = "failed, retry limit reached"

        logger.info(f"Quality score {check.score:.2f} ({verdict})")
        return StateUpdate(
            quality_check=check,
            metadata={"retry_count": retry_count, "retry_requested": should_retry},
            thought_log=[
                started,
                ThoughtLogEntry(
                    stage=self.stage,
                    message=f"Review complete, score {check.score:.2f}: {verdict}",
                    progress=100 if check.passed else 90,
                    metadata={
                        "score": check.score,
                        "passed": check.passed,
                        "retry_count": retry_count,
                    },
                ),
            ],
        )

    async def _assess(self, intent: Intent, artifact_ref: str) -> QualityCheck:
        if self.config.use_external_assessment and self.assessment is not None:
            try:
                verdict = await self.assessment.assess(intent, artifact_ref)
            except Exception as e:
                logger.warning(f"External assessment failed, using heuristic: {e}")
            else:
                check = self._from_verdict(verdict)
                if check is not None:
                    return check
                logger.warning(f"Malformed assessment verdict, using heuristic: {verdict}")

        return self.heuristic_check(intent)

    def heuristic_check(self, intent: Intent) -> QualityCheck:
        """Confidence-based score with a random perturbation"""
        perturbation = self.rng.uniform(self.config.perturbation_low, self.config.perturbation_high)
        base = intent.confidence if intent.confidence is not None else DEFAULT_SCORE
        score = self._normalize_score(base + perturbation)
        passed = score >= self.config.pass_threshold
        return QualityCheck(
            passed=passed,
            score=score,
            feedback="Quality looks good" if passed else "Quality below threshold",
            suggestions=[] if passed else list(HEURISTIC_SUGGESTIONS),
        )

    def _from_verdict(self, verdict: Any) -> Optional[QualityCheck]:
        if not isinstance(verdict, dict):
            return None

        score = verdict.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return None
        if math.isnan(score) or not 0.0 <= score <= 1.0:
            return None

        suggestions = verdict.get("suggestions")
        feedback = verdict.get("feedback")
        return QualityCheck(
            passed=verdict.get("passed") is True and score >= self.config.pass_threshold,
            score=float(score),
            feedback=feedback if isinstance(feedback, str) else None,
            suggestions=[str(s) for s in suggestions] if isinstance(suggestions, list) else [],
        )

    @staticmethod
    def _normalize_score(value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return DEFAULT_SCORE
        return _clamp(float(value))

    def _fail_open(self, started: ThoughtLogEntry, retry_count: int, reason: str) -> StateUpdate:
        metadata: Dict[str, Any] = {"retry_count": retry_count, "retry_requested": False}
        return StateUpdate(
            quality_check=QualityCheck(
                passed=True,
                score=FAIL_OPEN_SCORE,
                feedback=f"{reason}, result accepted without assessment",
                suggestions=[],
                assessed=False,
            ),
            metadata=metadata,
            thought_log=[
                started,
                ThoughtLogEntry(
                    stage=self.stage,
                    message=f"{reason}, accepting the result",
                    progress=100,
                    metadata={"passed": True, "assessed": False},
                ),
            ],
        )
