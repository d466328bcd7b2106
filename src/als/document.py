"""Parsed Live set documents.

lxml drops the original XML declaration when serialising a bare element and
would rewrite it with single quotes, so :class:`AlsDocument` keeps whatever
text preceded the root element verbatim and re-attaches it on output.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Optional

from lxml import etree

from domain.errors import AlsFormatError

from .codec import compress, decompress
from .xml_paths import Element, direct_child

_ROOT_START = re.compile(r"<[A-Za-z_]")


@dataclass
class AlsDocument:
    """Root element of a Live set plus the text surrounding it."""

    root: Element
    prolog: str = ""
    epilog: str = ""

    @property
    def live_set(self) -> Optional[Element]:
        return direct_child(self.root, "LiveSet")

    def clone(self) -> AlsDocument:
        return AlsDocument(copy.deepcopy(self.root), self.prolog, self.epilog)

    def to_text(self) -> str:
        body = etree.tostring(self.root, encoding="unicode", with_tail=False)
        return f"{self.prolog}{body}{self.epilog}"

    def to_bytes(self) -> bytes:
        return compress(self.to_text())


def _parser() -> etree.XMLParser:
    return etree.XMLParser(huge_tree=True, remove_blank_text=False, resolve_entities=False)


def parse_text(text: str) -> AlsDocument:
    """Parse already-inflated Live set XML."""

    match = _ROOT_START.search(text)
    prolog = text[: match.start()] if match else ""
    stripped = text.rstrip()
    epilog = text[len(stripped):]
    try:
        root = etree.fromstring(text.encode("utf-8"), _parser())
    except etree.XMLSyntaxError as exc:
        raise AlsFormatError(f"Failed to parse Live set XML: {exc}") from exc
    return AlsDocument(root=root, prolog=prolog, epilog=epilog)


def parse_document(data: bytes) -> AlsDocument:
    """Inflate and parse the raw bytes of an ``.als`` file."""

    return parse_text(decompress(data))


__all__ = ["AlsDocument", "parse_document", "parse_text"]
