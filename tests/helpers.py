"""Test doubles and image helpers shared across test modules."""

import asyncio
import hashlib
from collections.abc import Callable
from pathlib import Path

from PIL import Image
from pydantic_ai import BinaryContent

from photo_captioner.errors import DescriptionError


def make_image(path: Path, color: tuple[int, int, int] = (200, 30, 30)) -> Path:
    """Write a tiny real image; the format follows the file extension."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (4, 4), color).save(path)
    return path


class FakeDescriber:
    """Describer double with call recording, optional delay and per-image failures."""

    def __init__(
        self,
        text: str | Callable[[BinaryContent], str] = "X",
        *,
        fail_if: Callable[[BinaryContent], bool] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._text = text
        self._fail_if = fail_if
        self._delay = delay
        self.calls: list[dict[str, object]] = []
        self.in_flight = 0
        self.peak = 0

    async def describe(
        self,
        image: BinaryContent,
        trigger_word: str,
        user_prompt: str,
        system_prompt: str,
    ) -> str:
        self.calls.append(
            {
                "media_type": image.media_type,
                "trigger_word": trigger_word,
                "user_prompt": user_prompt,
                "system_prompt": system_prompt,
            },
        )
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self._delay)
            if self._fail_if is not None and self._fail_if(image):
                msg = "simulated service outage"
                raise DescriptionError(msg)
        finally:
            self.in_flight -= 1
        return self._text(image) if callable(self._text) else self._text


def digest_text(image: BinaryContent) -> str:
    """Deterministic description derived from the image content."""
    return f"digest {hashlib.sha256(image.data).hexdigest()[:12]}"
