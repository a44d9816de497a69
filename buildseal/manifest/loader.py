from __future__ import annotations

import copy
import logging
import os
import tempfile
from pathlib import Path

from lxml import etree

from buildseal.core.errors import ManifestParseError
from buildseal.manifest.document import METADATA, ROOT_TAG, ManifestDocument

logger = logging.getLogger(__name__)

REQUIRED_METADATA_FIELDS = ("schema_version", "target_name")


def _parser() -> etree.XMLParser:
    # No entity expansion, no DTD or network fetches.
    return etree.XMLParser(
        remove_blank_text=True,
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )


def load(data: bytes) -> ManifestDocument:
    """Parse persisted manifest bytes into a ManifestDocument.

    Raises ManifestParseError on malformed XML, a DOCTYPE declaration, an
    unknown root element or missing required metadata.
    """

    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("manifest data must be bytes")
    try:
        root = etree.fromstring(bytes(data), _parser())
    except etree.XMLSyntaxError as e:
        raise ManifestParseError(f"malformed manifest XML: {e}") from e

    # Unexpanded entity references would not survive serialize().
    docinfo = root.getroottree().docinfo
    if docinfo.doctype or docinfo.internalDTD is not None:
        raise ManifestParseError("DOCTYPE declarations are not allowed in manifests")

    if root.tag != ROOT_TAG:
        raise ManifestParseError(f"unknown root element <{root.tag}> (expected <{ROOT_TAG}>)")

    document = ManifestDocument(root)
    meta = document.get(METADATA)
    if meta is None:
        raise ManifestParseError(f"missing <{METADATA}> section")
    for name in REQUIRED_METADATA_FIELDS:
        value = document.field(METADATA, name)
        if not value:
            raise ManifestParseError(f"{METADATA}.{name} missing/empty")
    return document


def load_path(path: Path) -> ManifestDocument:
    data = Path(path).read_bytes()
    try:
        return load(data)
    except ManifestParseError as e:
        raise ManifestParseError(f"{path}: {e}") from e


def _normalize(root: etree._Element) -> None:
    for node in root.iter():
        if not isinstance(node.tag, str):
            if node.tail is not None and not node.tail.strip():
                node.tail = None
            continue
        if len(node.attrib) > 1:
            items = sorted(node.attrib.items())
            node.attrib.clear()
            for k, v in items:
                node.set(k, v)
        if len(node) and node.text is not None and not node.text.strip():
            node.text = None
        if node.tail is not None and not node.tail.strip():
            node.tail = None
    root.tail = None


def serialize(document: ManifestDocument) -> bytes:
    """Deterministic serialization: sorted attributes, normalized indentation, UTF-8."""

    root = copy.deepcopy(document.root)
    _normalize(root)
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def write_document(path: Path, data: bytes) -> Path:
    """Atomically write serialized manifest bytes (temp file + rename)."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    logger.info("manifest written: %s (%d bytes)", path, len(data))
    return path

