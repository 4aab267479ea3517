"""Batch coordination: discover images, describe each one, persist outputs, archive."""

import asyncio
import os
import tempfile
from collections import Counter
from functools import partial
from pathlib import Path

from loguru import logger

from photo_captioner.archive import archive_directory
from photo_captioner.config import DEFAULT_CONCURRENCY
from photo_captioner.describer import Describer, read_image
from photo_captioner.errors import ArchiveError, ConfigError, DescriptionError
from photo_captioner.models import (
    BatchResult,
    ErrorKind,
    InputImage,
    ProcessingContext,
    TaskOutcome,
)
from photo_captioner.scheduler import check_concurrency_limit, run_all


IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def discover_images(input_dir: Path) -> list[InputImage]:
    """
    List the images directly inside ``input_dir`` (jpg, jpeg, png; case insensitive).

    Order follows directory enumeration and is not stable across platforms.

    Raises:
        ConfigError: the directory does not exist or cannot be listed.

    """
    try:
        entries = list(input_dir.iterdir())
    except OSError as exc:
        msg = f"cannot list input directory {input_dir}: {exc}"
        raise ConfigError(msg, hint="Pass an existing folder with --input-directory") from exc

    images = [
        InputImage.from_path(path)
        for path in entries
        if path.suffix.lower() in IMAGE_EXTENSIONS and path.is_file()
    ]

    stems = Counter(image.stem for image in images)
    for stem, count in stems.items():
        if count > 1:
            logger.warning("description_name_collision", stem=stem, files=count)

    logger.info("image_files_discovered", count=len(images), input=str(input_dir))
    return images


def load_prompt(prompt_path: Path) -> str:
    """Read the user prompt file once. Raises ConfigError when it cannot be read."""
    try:
        prompt = prompt_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"cannot read prompt file {prompt_path}: {exc}"
        raise ConfigError(msg, hint="Pass a UTF-8 text file with --prompt") from exc
    logger.debug("prompt_loaded", file=str(prompt_path), chars=len(prompt))
    return prompt


def _atomic_write(target: Path, data: bytes) -> None:
    """Write ``data`` next to ``target`` and rename it into place."""
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        tmp_path.replace(target)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_outputs(
    output_root: Path,
    image: InputImage,
    data: bytes,
    description: str,
) -> tuple[Path, Path]:
    """
    Persist the image copy and its ``<stem>.txt`` description.

    Both files are present afterwards, or neither: if the description cannot be
    written, the image copy is removed again, unless it is the source image itself.
    """
    image_target = output_root / image.name
    text_target = output_root / f"{image.stem}.txt"

    _atomic_write(image_target, data)
    try:
        _atomic_write(text_target, description.encode("utf-8"))
    except OSError:
        if not (image.path.exists() and os.path.samefile(image_target, image.path)):
            image_target.unlink(missing_ok=True)
        raise
    return image_target, text_target


async def process_item(
    image: InputImage,
    context: ProcessingContext,
    output_root: Path,
    describer: Describer,
) -> TaskOutcome:
    """
    Read, describe and persist one image. Never raises: failures become outcomes.

    Steps stop at the first failure. File I/O runs in a worker thread so other
    admitted items keep making progress.
    """
    with logger.contextualize(file=image.name):
        logger.info("processing_image")
        error: Exception
        try:
            data, attachment = await asyncio.to_thread(read_image, image.path)
            description = await describer.describe(
                attachment,
                context.trigger_word,
                context.user_prompt,
                context.system_prompt,
            )
            written = await asyncio.to_thread(
                write_outputs,
                output_root,
                image,
                data,
                description,
            )
        except OSError as exc:
            kind, error = ErrorKind.IO, exc
        except DescriptionError as exc:
            kind, error = ErrorKind.DESCRIPTION, exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("processing_exception", error=str(exc))
            kind, error = ErrorKind.INTERNAL, exc
        else:
            logger.info("processing_success", description=description)
            return TaskOutcome.success(image.name, *written)

        logger.error("processing_failed", kind=kind.value, error=str(error))
        return TaskOutcome.failure(image.name, kind, f"{type(error).__name__}: {error}")


async def run_batch(
    input_dir: Path,
    output_dir: Path,
    trigger_word: str,
    prompt_path: Path,
    concurrency_limit: int = DEFAULT_CONCURRENCY,
    *,
    archive: bool = True,
    describer: Describer,
) -> BatchResult:
    """
    Describe every image in ``input_dir`` into ``output_dir`` and optionally zip it.

    Args:
        input_dir: Folder scanned (non-recursively) for jpg/jpeg/png files
        output_dir: Destination for image copies and ``<stem>.txt`` descriptions
        trigger_word: Label the descriptions are written around
        prompt_path: Text file holding the user prompt
        concurrency_limit: Maximum number of images in flight
        archive: Zip ``output_dir`` into a sibling archive once every item settled
        describer: Describer used for every item

    Returns:
        BatchResult with success/failure counts and the archive path or error.

    Raises:
        ConfigError: bad concurrency limit, unreadable input directory or prompt file,
            or an output directory that is the input directory or cannot be created.
            Raised before any image is processed.

    """
    check_concurrency_limit(concurrency_limit)

    if output_dir.resolve() == input_dir.resolve():
        msg = f"output directory {output_dir} is the input directory"
        raise ConfigError(msg, hint="Pass a separate folder with --output-directory")
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"cannot create output directory {output_dir}: {exc}"
        raise ConfigError(msg, hint="Pass a writable folder with --output-directory") from exc
    images = discover_images(input_dir)
    user_prompt = load_prompt(prompt_path)
    context = ProcessingContext.build(trigger_word, user_prompt)

    tasks = [partial(process_item, image, context, output_dir, describer) for image in images]
    outcomes = await run_all(tasks, concurrency_limit)
    result = BatchResult.from_outcomes(outcomes)

    if result.failures:
        logger.error(
            "images_failed",
            files={f.image_name: str(f.error_kind) for f in result.failures},
        )

    if archive:
        try:
            archive_path = await asyncio.to_thread(archive_directory, output_dir)
        except ArchiveError as exc:
            logger.error("archive_failed", error=str(exc), output=str(output_dir))
            result = result.model_copy(update={"archive_error": str(exc)})
        else:
            result = result.model_copy(update={"archive_path": archive_path})

    logger.info(
        "processing_summary",
        total_files=result.total,
        successful=result.successes,
        failed=result.failure_count,
        archive=str(result.archive_path) if result.archive_path else None,
        archive_error=result.archive_error,
    )
    return result
