"""Vision-model adapter: turn one image plus prompts into a text description."""

import asyncio
import time
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from PIL import Image
from pydantic_ai import BinaryContent, ModelSettings

from photo_captioner.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT
from photo_captioner.errors import DescriptionError


if TYPE_CHECKING:
    from pydantic_ai import Agent


def encode_image(data: bytes) -> BinaryContent:
    """
    Wrap raw image bytes as BinaryContent with the media type Pillow detects.

    The bytes are passed through unchanged. Raises OSError (PIL.UnidentifiedImageError)
    when the content is not an image Pillow can identify or exceeds its pixel limit.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            image_format = img.format or "JPEG"
    except Image.DecompressionBombError as exc:
        msg = f"image too large to decode safely: {exc}"
        raise OSError(msg) from exc
    media_type = Image.MIME.get(image_format, "image/jpeg")
    logger.debug("image_encoded", media_type=media_type, size_kb=len(data) // 1024)
    return BinaryContent(data=data, media_type=media_type)


def read_image(image_path: Path) -> tuple[bytes, BinaryContent]:
    """Read an image once, returning the original bytes and the agent attachment."""
    data = image_path.read_bytes()
    return data, encode_image(data)


class Describer:
    """
    Single-call adapter around a pydantic-ai agent.

    The agent is built by the caller and injected, so tests can hand in a stub that
    exposes an async ``run`` method. No retries happen here: one call per image.
    """

    def __init__(
        self,
        agent: "Agent[Any, str]",
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self.agent = agent
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def describe(
        self,
        image: BinaryContent,
        trigger_word: str,
        user_prompt: str,
        system_prompt: str,
    ) -> str:
        """
        Ask the vision model for a description of ``image``.

        Args:
            image: Image attachment (see ``encode_image``)
            trigger_word: Label the description should be written around
            user_prompt: Free-form instructions loaded from the prompt file
            system_prompt: Role prompt, already rendered for the trigger word

        Returns:
            The description text, stripped of surrounding whitespace.

        Raises:
            DescriptionError: the call failed, timed out or produced an empty answer.

        """
        logger.info("describing_image", trigger=trigger_word)
        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.agent.run(
                    [
                        user_prompt,
                        f"Describe this image with the context of {trigger_word}:",
                        image,
                    ],
                    deps=system_prompt,
                    model_settings=ModelSettings(
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                    ),
                ),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            logger.error("description_timeout", seconds=self.timeout)
            msg = f"description request timed out after {self.timeout}s"
            raise DescriptionError(msg) from exc
        except Exception as exc:  # noqa: BLE001
            logger.error("description_request_failed", error=str(exc))
            msg = f"description request failed: {type(exc).__name__}: {exc}"
            raise DescriptionError(msg) from exc

        output = result.output
        description = output.strip() if isinstance(output, str) else ""
        if not description:
            logger.error("description_empty")
            msg = "description service returned an empty response"
            raise DescriptionError(msg, hint="Check the model supports image input")

        logger.info(
            "description_completed",
            seconds=round(time.perf_counter() - t0, 3),
            chars=len(description),
        )
        return description
