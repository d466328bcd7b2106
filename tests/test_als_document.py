import gzip

import pytest
from lxml import etree

from als.codec import compress, decompress
from als.document import parse_document, parse_text
from als.xml_paths import child_path, direct_children, element_children, path_value
from domain.errors import AlsFormatError, CompressionError


def test_compress_is_deterministic_and_readable_by_gzip():
    text = '<?xml version="1.0" encoding="UTF-8"?>\n<Ableton/>\n'

    first = compress(text)
    assert first == compress(text)
    assert gzip.decompress(first).decode("utf-8") == text
    assert decompress(first) == text


@pytest.mark.parametrize(
    "payload",
    [b"not gzip at all", gzip.compress(b"<Ableton/>")[:12], gzip.compress(b"\xff\xfe\xfa")],
)
def test_decompress_rejects_corrupt_payloads(payload):
    with pytest.raises(CompressionError, match="decompression failed"):
        decompress(payload)


def test_document_serialises_back_to_identical_text(live_set_text):
    document = parse_text(live_set_text)

    assert document.prolog == '<?xml version="1.0" encoding="UTF-8"?>\n'
    assert document.epilog == "\n"
    assert document.to_text() == live_set_text
    assert document.live_set is not None


def test_parse_document_inflates_bytes(live_set_bytes, live_set_text):
    document = parse_document(live_set_bytes)
    assert document.to_text() == live_set_text
    assert decompress(document.to_bytes()) == live_set_text


def test_malformed_xml_raises_format_error():
    with pytest.raises(AlsFormatError):
        parse_text("<Ableton><LiveSet></Ableton>")


def test_clone_is_independent(live_set_text):
    document = parse_text(live_set_text)
    clone = document.clone()

    clone.live_set.set("Edited", "yes")

    assert document.live_set.get("Edited") is None
    assert document.to_text() == live_set_text


def test_paths_only_follow_direct_children():
    root = etree.fromstring(
        '<A><B><C Value="nested"/></B><C Value="direct"/><!-- note --><C Value="second"/></A>'
    )

    assert path_value(root, ("C",)) == "direct"
    assert path_value(root, ("B", "C")) == "nested"
    assert path_value(root, ("B", "Missing"), "fallback") == "fallback"
    assert child_path(None, ("B",)) is None
    assert [node.get("Value") for node in direct_children(root, "C")] == ["direct", "second"]
    assert [node.tag for node in element_children(root)] == ["B", "C", "C"]
