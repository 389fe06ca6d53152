"""
Ridi Shelf - Utility Functions

Common filesystem and formatting helpers.
"""
import asyncio
import os
from pathlib import Path, PurePosixPath
from typing import Any, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def hexdump(data: bytes, offset: int = 0, length: Optional[int] = None) -> str:
    """
    Format bytes as hex dump.

    Args:
        data: Bytes to dump
        offset: Starting offset for display
        length: Max bytes to display (None = all)

    Returns:
        Formatted hex dump string
    """
    if length:
        data = data[:length]

    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i:i + 16]
        hex_part = ' '.join(f'{b:02x}' for b in chunk)
        ascii_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in chunk)
        lines.append(f'{offset + i:08x}  {hex_part:<48}  |{ascii_part}|')

    return '\n'.join(lines)


def ensure_dir(path) -> Path:
    """Ensure directory exists, create if needed."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def safe_join(root: Path, relative: str) -> Path:
    """
    Join an archive member path onto root.

    Raises:
        ValueError: If the member is absolute or climbs out of root
    """
    member = PurePosixPath(relative.replace('\\', '/'))
    if member.is_absolute() or '..' in member.parts:
        raise ValueError(f"Entry escapes destination: {relative!r}")
    parts = [p for p in member.parts if p not in ('', '.')]
    if not parts:
        raise ValueError(f"Empty entry path: {relative!r}")
    return root.joinpath(*parts)


def write_bytes_atomic(path: Path, data: bytes) -> Path:
    """Write via a sibling .part file and rename into place."""
    path = Path(path)
    tmp = path.with_name(path.name + '.part')
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return path


def list_child_dirs(path: Path, ignored: Sequence[str] = ()) -> List[str]:
    """Names of the immediate subdirectories of path, sorted."""
    return sorted(
        entry.name for entry in Path(path).iterdir()
        if entry.is_dir() and entry.name not in ignored
    )


async def run_io(func: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
    """
    Run blocking filesystem work off the event loop, bounded by timeout.

    Worker threads cannot be interrupted, so on timeout this waits for the
    thread to finish before raising. Callers may then clean up whatever the
    call touched without racing it.
    """
    work = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.wait_for(asyncio.shield(work), timeout)
    except asyncio.TimeoutError:
        await asyncio.gather(work, return_exceptions=True)
        raise
