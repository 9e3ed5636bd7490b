"""Intent classification with an OpenAI-compatible chat model

Produces a structured intent from the user's request. The model is asked for
a JSON object only; anything that does not parse into one of the four allowed
actions is treated as a classification failure.
"""

import json
import logging

from openai import AsyncOpenAI
from pydantic import ValidationError

from ..agent.state import Intent, IntentAction
from ..config import Config
from ..errors import ClassificationError
from .base import LanguageClassifier

logger = logging.getLogger(__name__)


CLASSIFIER_SYSTEM_PROMPT = """You are the intent classifier of an AI image studio.

Read the user's request and decide what they want the studio to do.

ACTIONS:
- "generate": create a new image from a description
- "edit_region": repaint one region of an existing image
- "adjust_parameters": change size, aspect ratio, model or similar settings of the previous result
- "unknown": the request is not an image task or is too unclear to act on

FIELDS:
- subject: the main thing to depict, in English, or null
- style: the art style exactly as the user wrote it (keep their language), or null
- prompt: a concise English prompt for an image model describing the request
- confidence: how sure you are about the action, from 0.0 to 1.0
- reasoning: one short sentence

OUTPUT FORMAT:
You must respond with ONLY a JSON object (no markdown, no explanation):

{
  "action": "generate" | "edit_region" | "adjust_parameters" | "unknown",
  "subject": "string or null",
  "style": "string or null",
  "prompt": "string",
  "confidence": 0.0,
  "reasoning": "string"
}
"""


class OpenAIIntentClassifier(LanguageClassifier):
    """Classifies requests with a JSON-mode chat completion"""

    def __init__(self, config: Config):
        """
        Initialize the classifier.

        Args:
            config: Configuration object; uses ``models.classifier``

        Raises:
            ValueError: If the API key is not set
        """
        self.config = config
        self.settings = config.models.classifier

        api_key = config.get_api_key("classifier")
        if not api_key:
            raise ValueError(f"{self.settings.api_key_env} not found")

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
        )
        self.model = self.settings.model

        logger.info(f"Initialized intent classifier with model {self.model}")

    async def classify(self, text: str) -> Intent:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"Classifier request failed: {e}")
            raise ClassificationError("Intent classification request failed", details=str(e)) from e

        content = response.choices[0].message.content or ""
        logger.debug(f"Classifier raw response: {content[:500]}")

        try:
            data = json.loads(content)
            action = IntentAction(data["action"])
            intent = Intent(
                action=action,
                subject=data.get("subject") or None,
                style=data.get("style") or None,
                prompt=data.get("prompt") or text,
                confidence=float(data.get("confidence", 0.5)),
                raw_response=content,
                parameters=data.get("parameters") or {},
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"Failed to parse classifier response: {e}")
            raise ClassificationError("Unparseable classifier response", details=str(e)) from e

        logger.info(
            f"Classified intent as {intent.action.value} "
            f"(confidence={intent.confidence:.2f}): {str(data.get('reasoning') or '')[:100]}"
        )
        return intent
