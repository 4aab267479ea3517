"""Zip archival of a finished output directory."""

import zipfile
from pathlib import Path

from loguru import logger

from photo_captioner.errors import ArchiveError


def archive_path_for(directory: Path) -> Path:
    """Return the sibling archive path, e.g. ``output`` -> ``output.zip``."""
    resolved = directory.resolve()
    return resolved.with_name(f"{resolved.name}.zip")


def archive_directory(directory: Path) -> Path:
    """
    Compress ``directory`` into a sibling ``.zip`` file.

    Entries are stored relative to the directory (no top-level folder), sorted, with
    DEFLATE level 9. An existing archive is replaced. An empty directory yields an
    empty but valid archive.

    Raises:
        ArchiveError: the directory is missing or the archive cannot be written.

    """
    if not directory.is_dir():
        msg = f"cannot archive {directory}: not a directory"
        raise ArchiveError(msg)

    target = archive_path_for(directory)
    partial = target.with_name(f".{target.name}.part")
    try:
        files = sorted(p for p in directory.rglob("*") if p.is_file())
        with zipfile.ZipFile(
            partial,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
        ) as zf:
            for path in files:
                zf.write(path, arcname=path.relative_to(directory).as_posix())
        partial.replace(target)
    except (OSError, zipfile.BadZipFile) as exc:
        partial.unlink(missing_ok=True)
        msg = f"failed to archive {directory}: {exc}"
        raise ArchiveError(msg) from exc

    logger.info("output_archived", archive=str(target), files=len(files))
    return target
