"""Direct-child navigation over Live set XML.

Live reuses tag names such as ``Name`` or ``Value`` at many depths, so every
lookup here walks explicit child paths and never searches descendants.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from lxml import etree

Element = etree._Element


def direct_child(node: Optional[Element], tag: str) -> Optional[Element]:
    if node is None:
        return None
    return node.find(f"./{tag}")


def direct_children(node: Optional[Element], tag: str) -> List[Element]:
    if node is None:
        return []
    return node.findall(f"./{tag}")


def child_path(node: Optional[Element], tags: Sequence[str]) -> Optional[Element]:
    """Follow ``tags`` one direct child at a time; ``None`` if any hop misses."""

    current = node
    for tag in tags:
        current = direct_child(current, tag)
        if current is None:
            return None
    return current


def element_children(node: Optional[Element]) -> List[Element]:
    """Element children of ``node``, skipping comments and processing instructions."""

    if node is None:
        return []
    return [child for child in node if isinstance(child.tag, str)]


def attribute_value(node: Optional[Element], default: Optional[str] = None) -> Optional[str]:
    """Read the ``Value`` attribute Live uses for scalar leaves."""

    if node is None:
        return default
    return node.get("Value", default)


def path_value(
    node: Optional[Element], tags: Sequence[str], default: Optional[str] = None
) -> Optional[str]:
    return attribute_value(child_path(node, tags), default)


__all__ = [
    "Element",
    "attribute_value",
    "child_path",
    "direct_child",
    "direct_children",
    "element_children",
    "path_value",
]
