# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Compressor - Compression codecs for backup artifacts.

Two codecs are used:
1. gzip for envelope artifacts (whole-document, .json.gz)
2. zstd (level 19) for tree artifacts, streamed through the tar writer
"""

import asyncio
import gzip
import zlib
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, BinaryIO, Callable

import structlog
import zstandard as zstd

from eduvault.exceptions import ArtifactIOError

logger = structlog.get_logger()

# Thread pool for CPU-bound compression and tar work
_executor = ThreadPoolExecutor(max_workers=4)

# Default compression settings
DEFAULT_ZSTD_LEVEL = 19  # Maximum compression
DEFAULT_GZIP_LEVEL = 9

# Payloads above this size are compressed off the event loop
_INLINE_LIMIT = 1024 * 1024

GZIP_SUFFIX = ".gz"
ZSTD_SUFFIX = ".zst"


async def run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking function in the shared thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, func, *args)


async def gzip_compress(data: bytes, level: int = DEFAULT_GZIP_LEVEL) -> bytes:
    """
    Compress an envelope document with gzip.

    Runs in thread pool for large data to avoid blocking.
    """
    try:
        if len(data) > _INLINE_LIMIT:
            return await run_blocking(gzip.compress, data, level)
        return gzip.compress(data, level)
    except Exception as e:
        raise ArtifactIOError(
            f"Compression failed: {e}",
            details={"original_size": len(data)},
        )


async def gzip_decompress(data: bytes) -> bytes:
    """
    Decompress a gzip envelope document.

    Raises:
        ArtifactIOError: If the data is not valid gzip
    """
    try:
        if len(data) > _INLINE_LIMIT:
            return await run_blocking(gzip.decompress, data)
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise ArtifactIOError(f"Decompression failed: {e}")


def open_zstd_writer(raw: BinaryIO, level: int = DEFAULT_ZSTD_LEVEL):
    """
    Wrap a binary file in a streaming zstd compressor.

    Closing the returned writer flushes the final frame and closes raw.
    """
    cctx = zstd.ZstdCompressor(level=level)
    return cctx.stream_writer(raw)


def decompress_zstd_file(source: Path, destination: Path) -> int:
    """
    Stream-decompress a zstd file into destination.

    Returns:
        Number of decompressed bytes written
    """
    dctx = zstd.ZstdDecompressor()
    try:
        with open(source, "rb") as src, open(destination, "wb") as dst:
            _, written = dctx.copy_stream(src, dst)
        return written
    except zstd.ZstdError as e:
        raise ArtifactIOError(
            f"Decompression failed: {e}",
            details={"path": str(source)},
        )


def get_compression_stats(
    original_size: int,
    compressed_size: int,
) -> dict:
    """
    Calculate compression statistics.

    Args:
        original_size: Original data size in bytes
        compressed_size: Compressed data size in bytes

    Returns:
        Dict with compression statistics
    """
    if compressed_size == 0:
        return {
            "original_size": original_size,
            "compressed_size": compressed_size,
            "compression_ratio": 0,
            "space_saved_percent": 0,
        }

    ratio = original_size / compressed_size
    saved_bytes = original_size - compressed_size
    saved_percent = (saved_bytes / original_size) * 100 if original_size > 0 else 0

    return {
        "original_size": original_size,
        "compressed_size": compressed_size,
        "compression_ratio": round(ratio, 2),
        "space_saved_percent": round(saved_percent, 2),
    }
