from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from wpgh.internal_config import ZIP_LOCAL_FILE_HEADER_SIGNATURE

logger: logging.Logger = logging.getLogger(__name__)


def zip_library_available() -> bool:
    """``zipfile`` is importable everywhere, but it cannot inflate without zlib."""
    return getattr(zipfile, "zlib", None) is not None


def has_zip_signature(path: Path) -> bool:
    with open(path, "rb") as handle:
        signature = handle.read(4)
    result = signature == ZIP_LOCAL_FILE_HEADER_SIGNATURE
    logger.debug(
        f"ZIP signature check {'passed' if result else 'failed'}"
        f" (signature: {signature.hex()}, expected: {ZIP_LOCAL_FILE_HEADER_SIGNATURE.hex()})"
    )
    return result


def _check_with_zipfile(path: Path) -> bool:
    try:
        with zipfile.ZipFile(path, "r") as archive:
            bad_member = archive.testzip()
            if bad_member is not None:
                logger.warning(f"ZIP validation failed: corrupt member {bad_member}")
                return False
            names = archive.namelist()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError) as exc:
        logger.warning(f"ZIP validation failed: {exc}")
        return False

    logger.debug(f"ZIP validation passed: archive contains {len(names)} entries")
    for name in names[:5]:
        logger.debug(f"- {name}")
    return True


def is_valid_archive(path: Path) -> bool:
    """Return True if *path* is a readable, well-formed zip archive."""
    if not path.is_file():
        logger.warning(f"ZIP validation failed: {path} does not exist")
        return False

    if zip_library_available():
        return _check_with_zipfile(path)

    try:
        return has_zip_signature(path)
    except OSError as exc:
        logger.warning(f"ZIP validation failed: could not read {path}: {exc}")
        return False
