"""
Output Sinks
Writes a ``DownloadArtifact`` to exactly one destination: a zip file, an
extraction directory, or a binary stream (stdout by default).

Every sink drains the artifact and releases its connection, including on
error paths.
"""

import logging
import sys
import tempfile
import zipfile
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .catalog import DownloadArtifact
from .utils import format_edition_date

logger = logging.getLogger(__name__)

# Archives below this size are extracted from memory
_SPOOL_MAX_BYTES = 32 * 1024 * 1024

PathLike = Union[str, Path]


async def write_to_file(artifact: DownloadArtifact, path: PathLike) -> Path:
    """
    Stream the zip to *path*.

    Args:
        artifact: Download to consume
        path: Destination file (parent directories are created)

    Returns:
        The written path
    """
    path = Path(path)
    async with artifact:
        path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with path.open("wb") as fh:
            async for chunk in artifact.iter_chunks():
                fh.write(chunk)
                written += len(chunk)
    logger.info(f"[OUTPUT] Wrote {written:,} bytes to {path}")
    return path


async def extract_to_directory(
    artifact: DownloadArtifact, directory: PathLike, subdir: bool = False
) -> Path:
    """
    Extract the zip into *directory*, creating it if needed.

    Args:
        artifact: Download to consume
        directory: Extraction root
        subdir: Extract into ``<directory>/YYYY-MM-DD`` named after the edition

    Returns:
        The directory the files were extracted into
    """
    target = Path(directory)
    if subdir:
        target = target / format_edition_date(artifact.edition_date)

    async with artifact:
        target.mkdir(parents=True, exist_ok=True)
        # zipfile needs a seekable file
        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES) as spool:
            async for chunk in artifact.iter_chunks():
                spool.write(chunk)
            spool.seek(0)
            with zipfile.ZipFile(spool) as archive:
                names = archive.namelist()
                archive.extractall(target)

    logger.info(f"[OUTPUT] Extracted {len(names)} files to {target}")
    return target


async def write_to_stream(artifact: DownloadArtifact, stream: Optional[BinaryIO] = None) -> int:
    """Pipe the zip to a binary stream (stdout when omitted); returns bytes written."""
    if stream is None:
        stream = sys.stdout.buffer

    written = 0
    async with artifact:
        async for chunk in artifact.iter_chunks():
            stream.write(chunk)
            written += len(chunk)
        stream.flush()
    return written
