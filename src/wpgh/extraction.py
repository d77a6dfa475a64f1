from __future__ import annotations

import functools
import logging
import shutil
import stat
import struct
import subprocess
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from wpgh.exceptions import ExtractionFailedError
from wpgh.filesystem import RealFileSystem
from wpgh.internal_config import ZIP_LOCAL_FILE_HEADER_SIGNATURE
from wpgh.models import ExtractedTree
from wpgh.protocols import FileSystem

logger: logging.Logger = logging.getLogger(__name__)

RunCommand = Callable[..., subprocess.CompletedProcess[str]]
Which = Callable[[str], str | None]

# signature, version, flags, method, mtime, mdate, crc32, compressed, uncompressed,
# name length, extra length
_LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
_DATA_DESCRIPTOR_SIGNATURE = b"PK\x07\x08"
_FLAG_ENCRYPTED = 0x1
_FLAG_DATA_DESCRIPTOR = 0x8
_FLAG_UTF8 = 0x800
_METHOD_STORED = 0
_METHOD_DEFLATED = 8


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    run: Callable[[Path, Path], None]


def member_target(dest_dir: Path, member_name: str) -> Path:
    """Return where *member_name* lands under *dest_dir*, refusing escapes."""
    root = dest_dir.resolve()
    target = root.joinpath(member_name).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Unsafe archive member path: {member_name}")
    return target


def _is_symlink_member(info: zipfile.ZipInfo) -> bool:
    # only Unix-created entries carry a file type in the high attribute bits
    if info.create_system != 3:
        return False
    return stat.S_ISLNK(info.external_attr >> 16)


def extract_with_shutil(archive_path: Path, dest_dir: Path) -> None:
    shutil.unpack_archive(str(archive_path), str(dest_dir), format="zip")


def extract_with_zipfile(archive_path: Path, dest_dir: Path) -> None:
    with zipfile.ZipFile(archive_path, "r") as archive:
        for info in archive.infolist():
            if _is_symlink_member(info):
                raise ValueError(f"Symlink member rejected: {info.filename}")
            target = member_target(dest_dir, info.filename)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info, "r") as source, open(target, "wb") as output:
                shutil.copyfileobj(source, output)


def _inflate_until_end(data: memoryview, start: int) -> tuple[bytes, int]:
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    content = decompressor.decompress(data[start:])
    if not decompressor.eof:
        raise ValueError("Truncated deflate stream")
    return content, len(data) - len(decompressor.unused_data)


def extract_local_headers(archive_path: Path, dest_dir: Path) -> None:
    """Walk the local file headers directly, without the central directory.

    Handles stored and deflated members, including streamed members whose
    sizes only appear in a trailing data descriptor.
    """
    data = memoryview(archive_path.read_bytes())
    offset = 0
    extracted = 0

    while (
        offset + _LOCAL_HEADER.size <= len(data)
        and bytes(data[offset : offset + 4]) == ZIP_LOCAL_FILE_HEADER_SIGNATURE
    ):
        (
            _signature,
            _version,
            flags,
            method,
            _mtime,
            _mdate,
            crc,
            compressed_size,
            _size,
            name_length,
            extra_length,
        ) = _LOCAL_HEADER.unpack_from(data, offset)
        name_start = offset + _LOCAL_HEADER.size
        raw_name = bytes(data[name_start : name_start + name_length])
        name = raw_name.decode("utf-8" if flags & _FLAG_UTF8 else "cp437")
        data_start = name_start + name_length + extra_length

        if flags & _FLAG_ENCRYPTED:
            raise ValueError(f"Encrypted member not supported: {name}")

        if flags & _FLAG_DATA_DESCRIPTOR:
            if method == _METHOD_DEFLATED:
                content, end = _inflate_until_end(data, data_start)
            elif name.endswith("/"):
                # streamed directory entries carry no data before the descriptor
                content, end = b"", data_start
            else:
                raise ValueError(f"Cannot size streamed stored member: {name}")
            if bytes(data[end : end + 4]) == _DATA_DESCRIPTOR_SIGNATURE:
                end += 4
            (crc,) = struct.unpack_from("<I", data, end)
            end += 12
        else:
            end = data_start + compressed_size
            if end > len(data):
                raise ValueError(f"Truncated member: {name}")
            raw = bytes(data[data_start:end])
            if method == _METHOD_STORED:
                content = raw
            elif method == _METHOD_DEFLATED:
                content = zlib.decompress(raw, -zlib.MAX_WBITS)
            else:
                raise ValueError(f"Unsupported compression method {method}: {name}")

        if zlib.crc32(content) & 0xFFFFFFFF != crc:
            raise ValueError(f"CRC mismatch for member: {name}")

        target = member_target(dest_dir, name)
        if name.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        extracted += 1
        offset = end

    if not extracted:
        raise ValueError("No local file headers found")
    logger.debug(f"Local header extraction wrote {extracted} entries")


def extract_with_unzip_command(
    archive_path: Path,
    dest_dir: Path,
    run_command: RunCommand = subprocess.run,
    which: Which = shutil.which,
) -> None:
    binary = which("unzip")
    if not binary:
        raise FileNotFoundError("unzip command is not available")

    cmd = [binary, "-o", str(archive_path), "-d", str(dest_dir)]
    process = run_command(
        cmd,
        capture_output=True,
        check=False,
        text=True,
    )
    logger.debug(f"System unzip output: {process.stdout}")
    if process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            cmd,
            process.stdout,
            process.stderr,
        )


def default_strategies(
    run_command: RunCommand = subprocess.run,
    which: Which = shutil.which,
) -> list[ExtractionStrategy]:
    return [
        ExtractionStrategy("shutil.unpack_archive", extract_with_shutil),
        ExtractionStrategy("zipfile", extract_with_zipfile),
        ExtractionStrategy("local header reader", extract_local_headers),
        ExtractionStrategy(
            "unzip command",
            functools.partial(
                extract_with_unzip_command, run_command=run_command, which=which
            ),
        ),
    ]


class ExtractionEngine(object):
    """Try each extraction strategy in order until one of them succeeds."""

    def __init__(
        self,
        strategies: list[ExtractionStrategy] | None = None,
        filesystem: FileSystem | None = None,
    ) -> None:
        self.strategies = strategies if strategies is not None else default_strategies()
        self.filesystem = filesystem if filesystem is not None else RealFileSystem()

    def extract(self, archive_path: Path, dest_dir: Path) -> ExtractedTree:
        self.filesystem.mkdir(dest_dir, parents=True, exist_ok=True)
        failures: list[str] = []

        for strategy in self.strategies:
            logger.info(f"Attempting extraction using {strategy.name}...")
            try:
                strategy.run(archive_path, dest_dir)
            except Exception as exc:
                message = f"{strategy.name} failed: {exc}"
                logger.warning(message)
                failures.append(message)
                continue

            logger.info(f"{strategy.name} extraction successful")
            return ExtractedTree(
                root_path=dest_dir, strategy=strategy.name, failures=tuple(failures)
            )

        logger.error(f"Keeping archive for inspection at: {archive_path}")
        raise ExtractionFailedError(archive_path, failures)
