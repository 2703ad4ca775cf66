"""File reading helpers used for credential and certificate material."""

import asyncio
from pathlib import Path


async def read_text_file(path: str | Path) -> str:
    """Read a UTF-8 text file without blocking the event loop."""
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


async def read_bytes_file(path: str | Path) -> bytes:
    """Read a binary file without blocking the event loop."""
    return await asyncio.to_thread(Path(path).read_bytes)
