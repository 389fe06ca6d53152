"""
Ridi Shelf - Container Books

Comic and image books are stored as a ZIP container whose file entries are
each AES-128-ECB encrypted with a key cut from the device id. Entries are
independent, so they are decrypted and written concurrently once read.
"""
import asyncio
import logging
import stat
import zipfile
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from rs.crypto import aes_ecb_decrypt_unpad
from rs.errors import DecryptionError
from rs.keys import DeviceId
from rs.utils import ensure_dir, run_io, safe_join

logger = logging.getLogger(__name__)

DRAIN_CHUNK_SIZE = 0x10000


class EntryKind(Enum):
    """Kinds of container entry."""
    DIRECTORY = auto()
    FILE = auto()
    OTHER = auto()


@dataclass
class EntryFailure:
    """A container entry that produced no output."""
    name: str
    reason: str


@dataclass
class ContainerReport:
    """Outcome of processing one container."""
    directories: List[str] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    drained: List[str] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


def entry_kind(info: zipfile.ZipInfo) -> EntryKind:
    """Classify an entry from its name and unix mode bits."""
    if info.is_dir():
        return EntryKind.DIRECTORY

    # Archives written without unix attributes carry no file type bits
    file_type = stat.S_IFMT(info.external_attr >> 16)
    if file_type not in (0, stat.S_IFREG):
        return EntryKind.OTHER
    return EntryKind.FILE


def decrypt_entry(key: bytes, data: bytes) -> bytes:
    """
    Decrypt one container entry.

    Raises:
        DecryptionError: If the entry is not block aligned or badly padded
    """
    try:
        return aes_ecb_decrypt_unpad(key, data)
    except ValueError as e:
        raise DecryptionError(f"Entry decryption failed: {e}") from e


def _drain(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> None:
    with archive.open(info) as f:
        while f.read(DRAIN_CHUNK_SIZE):
            pass


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def _decrypt_and_write(
    key: bytes,
    data: bytes,
    target: Path,
    timeout: Optional[float],
) -> None:
    plain = decrypt_entry(key, data)
    await run_io(_write_file, target, plain, timeout=timeout)


async def process_container(
    device_id: DeviceId,
    container: Union[str, Path, BinaryIO],
    destination_root: Union[str, Path],
    io_timeout: Optional[float] = None,
    cancel: Optional[asyncio.Event] = None,
) -> ContainerReport:
    """
    Decrypt every file entry of a container into destination_root.

    Entry payloads are read in archive order, then decrypted and written as
    concurrent jobs. Returns once every job has finished. A failing entry is
    recorded in the report and does not stop its siblings.

    Args:
        device_id: Resolved device id
        container: Path or binary file object of the ZIP container
        destination_root: Directory that mirrors the container's tree
        io_timeout: Seconds allowed for each blocking I/O call
        cancel: When set, no further entries are scheduled

    Raises:
        DecryptionError: If the container itself cannot be opened
    """
    key = device_id.container_key()
    if len(key) != 16:
        raise DecryptionError(f"Device id too short for a container key: {len(key)} bytes")

    root = Path(destination_root)
    await run_io(ensure_dir, root, timeout=io_timeout)

    try:
        archive = await run_io(zipfile.ZipFile, container, timeout=io_timeout)
    except (zipfile.BadZipFile, OSError) as e:
        raise DecryptionError(f"Unreadable container: {e}") from e

    report = ContainerReport()
    jobs = []
    names = []

    with archive:
        try:
            for info in archive.infolist():
                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    logger.warning("Container processing cancelled before %s", info.filename)
                    break

                kind = entry_kind(info)
                try:
                    if kind is EntryKind.DIRECTORY:
                        await run_io(ensure_dir, safe_join(root, info.filename), timeout=io_timeout)
                        report.directories.append(info.filename)
                    elif kind is EntryKind.FILE:
                        target = safe_join(root, info.filename)
                        data = await run_io(archive.read, info, timeout=io_timeout)
                        jobs.append(asyncio.create_task(
                            _decrypt_and_write(key, data, target, io_timeout)
                        ))
                        names.append(info.filename)
                    else:
                        await run_io(_drain, archive, info, timeout=io_timeout)
                        report.drained.append(info.filename)
                except Exception as e:
                    # zlib.error, EOFError and friends surface from corrupt entry streams
                    logger.warning("Entry %s failed: %s", info.filename, e)
                    report.failures.append(EntryFailure(info.filename, str(e) or type(e).__name__))
        finally:
            # No job may outlive the archive or the caller's cleanup
            results = await asyncio.gather(*jobs, return_exceptions=True)

    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning("Entry %s failed: %s", name, result)
            report.failures.append(EntryFailure(name, str(result) or type(result).__name__))
        else:
            logger.debug("Wrote %s", name)
            report.written.append(name)

    return report
