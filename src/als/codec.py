"""Gzip container used by Live sets."""
from __future__ import annotations

import gzip
import zlib

from domain.errors import CompressionError

ENCODING = "utf-8"


def compress(text: str) -> bytes:
    """Encode ``text`` and wrap it in a gzip stream Live can open."""

    # mtime=0 keeps repeated exports of the same document byte-identical.
    return gzip.compress(text.encode(ENCODING), mtime=0)


def decompress(data: bytes) -> str:
    """Inflate a gzip stream into text, failing as a whole on any corruption."""

    try:
        return gzip.decompress(data).decode(ENCODING)
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
        raise CompressionError(f"decompression failed: {exc}") from exc


__all__ = ["compress", "decompress"]
