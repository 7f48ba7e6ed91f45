"""
Archive utilities for expanding uploaded ZIP bundles in memory.
"""
import io
import logging
import zipfile
import zlib
from typing import List, Optional, Tuple

from cloudsave.core.config import config


logger = logging.getLogger(__name__)

# Member extensions worth handing to the detector
SUPPORTED_EXTENSIONS = (
    ".ts",
    ".js",
    ".py",
    ".tf",
    ".tf.json",
    ".yaml",
    ".yml",
    ".json",
    ".png",
    ".jpg",
    ".svg",
)

# Members detected as images are listed but never decoded
BINARY_EXTENSIONS = (".png", ".jpg")


class ArchiveLimitExceededError(Exception):
    """Raised when an archive holds more entries than allowed."""
    pass


class InvalidArchiveError(Exception):
    """Raised when uploaded bytes are not a readable ZIP archive."""
    pass


def is_supported_member(name: str) -> bool:
    """
    Check whether an archive member has a supported extension.

    Args:
        name: Member path inside the archive

    Returns:
        True if the member should be detected and extracted
    """
    return name.lower().endswith(SUPPORTED_EXTENSIONS)


def expand_archive(data: bytes, max_files: Optional[int] = None) -> List[Tuple[str, str]]:
    """
    Expand a ZIP archive into (member name, text content) pairs.

    Every entry, directories included, counts towards the limit. Directories
    and unsupported extensions are skipped; members that are not valid UTF-8
    are skipped with a warning. Image members are returned with empty content
    so the detector can classify them.

    Args:
        data: Raw bytes of the ZIP archive
        max_files: Entry limit; defaults to config.MAX_FILES_IN_ZIP

    Returns:
        Members in archive order

    Raises:
        ArchiveLimitExceededError: If the archive has too many entries
        InvalidArchiveError: If data is not a ZIP archive
    """
    limit = config.MAX_FILES_IN_ZIP if max_files is None else max_files

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as error:
        raise InvalidArchiveError("Uploaded file is not a valid ZIP archive") from error

    with archive:
        entries = archive.infolist()
        if len(entries) > limit:
            raise ArchiveLimitExceededError(
                f"ZIP contains {len(entries)} files, exceeding the limit of {limit}."
            )

        members = []
        for entry in entries:
            if entry.is_dir():
                continue
            if not is_supported_member(entry.filename):
                logger.debug(f"Skipping unsupported archive member: {entry.filename}")
                continue

            if entry.filename.lower().endswith(BINARY_EXTENSIONS):
                members.append((entry.filename, ""))
                continue

            try:
                raw = archive.read(entry)
            except (zipfile.BadZipFile, OSError) as error:
                raise InvalidArchiveError(f"Archive member could not be read: {entry.filename}") from error
            except (RuntimeError, NotImplementedError, zlib.error) as error:
                # Encrypted members, unsupported compression methods and corrupt streams
                logger.warning(f"Skipping unreadable archive member {entry.filename}: {error}")
                continue

            try:
                members.append((entry.filename, raw.decode("utf-8")))
            except UnicodeDecodeError:
                logger.warning(f"Skipping binary archive member: {entry.filename}")

    logger.info("Expanded archive: %d entries, %d supported members", len(entries), len(members))
    return members
