"""
Ridi Shelf - Library Processing

Walks a reader library one book at a time. Every per-book error is turned
into a skipped or failed BookResult here; only device identity resolution
is allowed to abort a run.

Output layout:
    {output}/{id}.pdf
    {output}/{id}.epub
    {output}/{id}/...            (container tree)
"""
import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from rs.assets import AssetFormat, EbookAsset, classify_book, decrypt_asset, require_key_file
from rs.config import Settings
from rs.container import process_container
from rs.errors import (
    DecryptionError,
    KeyDerivationError,
    ResolutionError,
    UnsupportedAssetError,
)
from rs.keys import DeviceId, derive_content_key, load_key_file, resolve_device_id
from rs.utils import ensure_dir, list_child_dirs, run_io, write_bytes_atomic

logger = logging.getLogger(__name__)

STAGING_SUFFIX = '.partial'


class BookStatus(Enum):
    """Outcome of one book."""
    DECRYPTED = 'decrypted'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass
class BookResult:
    """Result of processing a single book folder."""
    book_id: str
    status: BookStatus
    format: Optional[AssetFormat] = None
    output: Optional[Path] = None
    reason: str = ''


@dataclass
class LibrarySummary:
    """Per-book results of a library run."""
    results: List[BookResult] = field(default_factory=list)

    def count(self, status: BookStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def decrypted(self) -> int:
        return self.count(BookStatus.DECRYPTED)

    @property
    def skipped(self) -> int:
        return self.count(BookStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(BookStatus.FAILED)


def list_books(library_path, ignored=()) -> List[str]:
    """Book folder names in a library, numeric ids in numeric order."""
    names = list_child_dirs(Path(library_path), ignored)
    return sorted(names, key=lambda n: (not n.isdigit(), int(n) if n.isdigit() else 0, n))


async def decrypt_single_asset(
    device_id: DeviceId,
    asset: EbookAsset,
    output_root: Path,
    io_timeout: Optional[float] = None,
) -> Path:
    """Derive the content key, then decrypt a pdf/epub asset to output_root."""
    key_path = require_key_file(asset)
    key_file = await run_io(load_key_file, key_path, timeout=io_timeout)
    content_key = derive_content_key(device_id, key_file)

    data = await run_io(asset.path.read_bytes, timeout=io_timeout)
    plain = decrypt_asset(asset.format, content_key, data)

    target = output_root / asset.output_name
    await run_io(write_bytes_atomic, target, plain, timeout=io_timeout)
    return target


def _promote(staging: Path, target: Path) -> None:
    if target.exists():
        shutil.rmtree(target)
    os.replace(staging, target)


async def decrypt_container_asset(
    device_id: DeviceId,
    asset: EbookAsset,
    output_root: Path,
    io_timeout: Optional[float] = None,
    cancel: Optional[asyncio.Event] = None,
) -> Path:
    """
    Decrypt a container asset into {output_root}/{id}.

    The tree is built in a staging directory and only moved into place when
    every entry succeeded.

    Raises:
        DecryptionError: If any entry failed or processing was cancelled
    """
    target = output_root / asset.output_name
    staging = output_root / (asset.output_name + STAGING_SUFFIX)
    await run_io(shutil.rmtree, staging, True, timeout=io_timeout)

    try:
        report = await process_container(device_id, asset.path, staging, io_timeout, cancel)
    except BaseException:
        await run_io(shutil.rmtree, staging, True, timeout=io_timeout)
        raise

    if not report.ok:
        await run_io(shutil.rmtree, staging, True, timeout=io_timeout)
        if report.cancelled:
            raise DecryptionError("Cancelled before all entries were processed")
        first = report.failures[0]
        raise DecryptionError(
            f"{len(report.failures)} container entries failed ({first.name}: {first.reason})"
        )

    await run_io(_promote, staging, target, timeout=io_timeout)
    logger.debug("Container %s: %d files, %d directories", asset.book_id,
                 len(report.written), len(report.directories))
    return target


async def process_book(
    device_id: DeviceId,
    library_path,
    book_id: str,
    output_root,
    settings: Optional[Settings] = None,
    cancel: Optional[asyncio.Event] = None,
) -> BookResult:
    """Decrypt one book. Never raises for per-book problems."""
    settings = settings or Settings()
    timeout = settings.io_timeout
    output_root = Path(output_root)

    try:
        asset = await run_io(classify_book, library_path, book_id, timeout=timeout)
    except OSError as e:
        logger.error("%s failed: cannot inspect book folder: %s", book_id, e)
        return BookResult(book_id, BookStatus.FAILED, reason=str(e))

    if asset is None:
        logger.info("%s skipped: unsupported or not downloaded yet", book_id)
        return BookResult(book_id, BookStatus.SKIPPED, reason="unsupported or not downloaded yet")

    logger.info("%s %s", book_id, asset.format.extension)
    try:
        if asset.format is AssetFormat.CONTAINER:
            output = await decrypt_container_asset(device_id, asset, output_root, timeout, cancel)
        else:
            output = await decrypt_single_asset(device_id, asset, output_root, timeout)
    except UnsupportedAssetError as e:
        logger.info("%s skipped: %s", book_id, e)
        return BookResult(book_id, BookStatus.SKIPPED, asset.format, reason=str(e))
    except asyncio.TimeoutError:
        logger.error("%s failed: I/O timed out after %ss", book_id, timeout)
        return BookResult(book_id, BookStatus.FAILED, asset.format, reason="I/O timed out")
    except (KeyDerivationError, DecryptionError, OSError) as e:
        logger.error("%s failed: %s", book_id, e)
        return BookResult(book_id, BookStatus.FAILED, asset.format, reason=str(e))

    return BookResult(book_id, BookStatus.DECRYPTED, asset.format, output=output)


async def process_library(
    device_id: DeviceId,
    library_path,
    output_root,
    settings: Optional[Settings] = None,
    on_result: Optional[Callable[[BookResult], None]] = None,
    cancel: Optional[asyncio.Event] = None,
) -> LibrarySummary:
    """Decrypt every book in a library, one at a time."""
    settings = settings or Settings()
    output_root = Path(output_root)
    await run_io(ensure_dir, output_root, timeout=settings.io_timeout)

    book_ids = await run_io(list_books, library_path, settings.ignored_folders,
                            timeout=settings.io_timeout)
    summary = LibrarySummary()
    for book_id in book_ids:
        if cancel is not None and cancel.is_set():
            logger.warning("Library run cancelled before %s", book_id)
            break
        result = await process_book(device_id, library_path, book_id, output_root, settings, cancel)
        summary.results.append(result)
        if on_result is not None:
            on_result(result)
    return summary


async def decrypt_library(
    library_path,
    output_root,
    settings: Optional[Settings] = None,
    account: Optional[str] = None,
    on_result: Optional[Callable[[BookResult], None]] = None,
) -> LibrarySummary:
    """
    Resolve the device id, then decrypt a whole library.

    Raises:
        ResolutionError: If the device id cannot be obtained
    """
    settings = settings or Settings()
    try:
        device_id = await run_io(resolve_device_id, settings.prefs_path,
                                 timeout=settings.io_timeout)
    except asyncio.TimeoutError as e:
        raise ResolutionError(f"Timed out reading {settings.prefs_path}") from e

    output_root = Path(output_root)
    if account:
        output_root = output_root / account
    return await process_library(device_id, library_path, output_root, settings, on_result)
