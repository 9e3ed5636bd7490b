"""External quality assessment with a vision-capable chat model"""

import json
import logging
from typing import Any, Dict

from openai import AsyncOpenAI

from ..agent.state import Intent
from ..config import Config
from ..errors import AssessmentError
from .base import AssessmentService

logger = logging.getLogger(__name__)


ASSESSMENT_SYSTEM_PROMPT = """You review images produced by an AI image studio.

Judge whether the image satisfies the request: subject present, requested style
visible, no obvious artifacts.

You must respond with ONLY a JSON object (no markdown, no explanation):

{
  "passed": true,
  "score": 0.0,
  "feedback": "one or two sentences",
  "suggestions": ["short actionable suggestion"]
}

score is between 0.0 and 1.0.
"""


class OpenAIAssessmentService(AssessmentService):
    """Scores an image against the intent with a JSON-mode chat completion"""

    def __init__(self, config: Config):
        self.config = config
        self.settings = config.models.assessment

        api_key = config.get_api_key("assessment")
        if not api_key:
            raise ValueError(f"{self.settings.api_key_env} not found")

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
        )
        self.model = self.settings.model

    async def assess(self, intent: Intent, artifact_ref: str) -> Dict[str, Any]:
        request = (
            f"Request: {intent.prompt}\n"
            f"Subject: {intent.subject or 'unspecified'}\n"
            f"Style: {intent.style or 'unspecified'}"
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": ASSESSMENT_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": request},
                            {"type": "image_url", "image_url": {"url": artifact_ref}},
                        ],
                    },
                ],
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content or ""
            verdict = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse assessment JSON: {e}")
            raise AssessmentError("Unparseable assessment response", details=str(e)) from e
        except Exception as e:
            logger.error(f"Assessment request failed: {e}")
            raise AssessmentError("Assessment request failed", details=str(e)) from e

        if not isinstance(verdict, dict):
            raise AssessmentError("Assessment response is not an object")

        logger.debug(f"Assessment verdict: {verdict}")
        return verdict
