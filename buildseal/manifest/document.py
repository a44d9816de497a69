from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from lxml import etree

from buildseal.core.errors import MissingSectionError


ROOT_TAG = "build_manifest"
SCHEMA_ID = "obinexus.build_manifest"
FORMAT_ID = "xml/1"

METADATA = "manifest_metadata"
SOURCE_FILES = "source_files"
BUILD_TOPOLOGY = "build_topology"
COMPONENT_VALIDATION = "component_validation"
CRYPTOGRAPHIC_VERIFICATION = "cryptographic_verification"
VERIFICATION_CHAIN = "cryptographic_verification/verification_chain"
BUILD_ARTIFACTS = "build_artifacts"

# Canonical order of the top-level sections.
SECTION_ORDER = (
    METADATA,
    SOURCE_FILES,
    BUILD_TOPOLOGY,
    COMPONENT_VALIDATION,
    CRYPTOGRAPHIC_VERIFICATION,
    BUILD_ARTIFACTS,
)


def format_field_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"unsupported field value type: {type(value).__name__}")


def is_element(node: Any) -> bool:
    # Comments and processing instructions have non-string tags.
    return isinstance(node.tag, str)


def child_elements(node: etree._Element) -> list[etree._Element]:
    return [c for c in node if is_element(c)]


class ManifestDocument:
    """Editable manifest tree.

    Sections are addressed by '/'-separated child tag paths from the root
    element, e.g. "cryptographic_verification/verification_chain". Every
    mutation is a tree operation; unknown elements and attributes ride along
    untouched.
    """

    def __init__(self, root: etree._Element) -> None:
        if root.tag != ROOT_TAG:
            raise ValueError(f"root element must be <{ROOT_TAG}>, got <{root.tag}>")
        self._root = root

    @classmethod
    def new(cls) -> "ManifestDocument":
        root = etree.Element(ROOT_TAG)
        root.set("schema", SCHEMA_ID)
        root.set("format", FORMAT_ID)
        return cls(root)

    @property
    def root(self) -> etree._Element:
        return self._root

    def copy(self) -> "ManifestDocument":
        return ManifestDocument(copy.deepcopy(self._root))

    def get(self, section_path: str) -> etree._Element | None:
        node = self._root
        for tag in _split_path(section_path):
            found = None
            for child in child_elements(node):
                if child.tag == tag:
                    found = child
                    break
            if found is None:
                return None
            node = found
        return node

    def require(self, section_path: str) -> etree._Element:
        node = self.get(section_path)
        if node is None:
            raise MissingSectionError(section_path)
        return node

    def insert_before(self, anchor_path: str, section: etree._Element) -> etree._Element:
        """Insert `section` immediately before the anchor section.

        A sibling with the same tag is removed first, so repeating the
        insertion never duplicates the section.
        """

        anchor = self.require(anchor_path)
        parent = anchor.getparent()
        if parent is None:
            raise ValueError("cannot insert before the root element")
        _remove_children_with_tag(parent, section.tag)
        anchor.addprevious(section)
        return section

    def append_child(self, section_path: str, item: etree._Element, *, replace_existing: bool = False) -> etree._Element:
        parent = self._root if section_path in ("", "/") else self.require(section_path)
        if replace_existing:
            _remove_children_with_tag(parent, item.tag)
        parent.append(item)
        return item

    def remove(self, section_path: str) -> bool:
        node = self.get(section_path)
        if node is None:
            return False
        parent = node.getparent()
        if parent is None:
            raise ValueError("cannot remove the root element")
        parent.remove(node)
        return True

    def set_field(self, section_path: str, field: str, value: Any) -> None:
        """Replace the text of a field element, creating it at the end of the section if absent."""

        section = self.require(section_path)
        target = None
        for child in child_elements(section):
            if child.tag == field:
                target = child
                break
        if target is None:
            target = etree.SubElement(section, field)
        target.text = format_field_value(value)

    def field(self, section_path: str, field: str) -> str | None:
        section = self.get(section_path)
        if section is None:
            return None
        for child in child_elements(section):
            if child.tag == field:
                return (child.text or "").strip()
        return None

    def section_tags(self) -> list[str]:
        return [c.tag for c in child_elements(self._root)]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ManifestDocument):
            return NotImplemented
        from buildseal.manifest.loader import serialize

        return serialize(self) == serialize(other)

    def __repr__(self) -> str:
        return f"ManifestDocument(sections={self.section_tags()!r})"


def _split_path(section_path: str) -> list[str]:
    if not isinstance(section_path, str) or not section_path.strip("/"):
        raise ValueError("section path missing/empty")
    return [p for p in section_path.split("/") if p]


def _remove_children_with_tag(parent: etree._Element, tag: str) -> None:
    for child in child_elements(parent):
        if child.tag == tag:
            parent.remove(child)
