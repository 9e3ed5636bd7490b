"""Image backends"""

import asyncio
import base64
import hashlib
import logging
from typing import Optional

import httpx
from openai import AsyncOpenAI

from ..config import Config
from ..errors import ArtifactGenerationError
from .base import ArtifactService, EditOptions, GenerationOptions

logger = logging.getLogger(__name__)

MOCK_IMAGE_URL = "https://picsum.photos/seed/{seed}/800/600"


def derive_seed(text: str) -> int:
    """Deterministic 31-bit seed derived from text"""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") & 0x7FFFFFFF


def _strip_data_url(data: str) -> str:
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


class MockArtifactService(ArtifactService):
    """Returns deterministic placeholder images for a prompt"""

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        seed = options.seed if options.seed is not None else derive_seed(prompt)
        await self._simulate_latency()
        url = MOCK_IMAGE_URL.format(seed=seed)
        logger.info(f"Mock image generated: {url}")
        return url

    async def edit(self, prompt: str, options: EditOptions) -> str:
        seed = derive_seed(f"{prompt}_{options.image_url}_{options.mask_base64[:20]}")
        await self._simulate_latency()
        url = MOCK_IMAGE_URL.format(seed=seed)
        logger.info(f"Mock image edited: {url}")
        return url

    async def _simulate_latency(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


class OpenAIArtifactService(ArtifactService):
    """Generates and edits images with the OpenAI images API"""

    def __init__(self, config: Config, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the image backend.

        Args:
            config: Configuration object; uses the ``artifacts`` section
            http_client: Client used to download reference images

        Raises:
            ValueError: If the API key is not set
        """
        self.config = config
        self.settings = config.artifacts

        api_key = config.get_api_key("artifacts")
        if not api_key:
            raise ValueError(f"{self.settings.api_key_env} not found")

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
        )
        self.http_client = http_client or httpx.AsyncClient(timeout=self.settings.timeout_seconds)

        logger.info(f"Initialized OpenAI image backend with model {self.settings.default_model}")

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        try:
            response = await self.client.images.generate(
                model=options.model,
                prompt=prompt,
                size=options.size,
                n=options.n,
            )
        except Exception as e:
            logger.error(f"Image generation failed: {e}")
            raise ArtifactGenerationError("Image generation failed", details=str(e)) from e

        return self._artifact_ref(response)

    async def edit(self, prompt: str, options: EditOptions) -> str:
        try:
            reference = await self.http_client.get(options.image_url)
            reference.raise_for_status()
            mask = base64.b64decode(_strip_data_url(options.mask_base64))

            response = await self.client.images.edit(
                model=options.model,
                image=("image.png", reference.content, "image/png"),
                mask=("mask.png", mask, "image/png"),
                prompt=prompt,
                size=options.size,
                n=1,
            )
        except Exception as e:
            logger.error(f"Image edit failed: {e}")
            raise ArtifactGenerationError("Image edit failed", details=str(e)) from e

        return self._artifact_ref(response)

    @staticmethod
    def _artifact_ref(response) -> str:
        if not response.data:
            raise ArtifactGenerationError("Image backend returned no data")
        image = response.data[0]
        if image.url:
            return image.url
        if image.b64_json:
            return f"data:image/png;base64,{image.b64_json}"
        raise ArtifactGenerationError("Image backend returned neither a URL nor image data")

    async def close(self) -> None:
        await self.http_client.aclose()
        await self.client.close()
