from __future__ import annotations

import sys
from pathlib import Path

import pytest

pytestmark = pytest.mark.repo_local

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from buildseal.config import read_builtin_template_bytes
from buildseal.core.errors import ManifestParseError
from buildseal.manifest.loader import load, load_path, serialize, write_document
from buildseal.manifest.model import (
    ExpectedResult,
    TopologyKind,
    ValidationLevel,
    manifest_from_document,
)
from buildseal.manifest.structure import first_error_message, validate_structure


TEMPLATE = read_builtin_template_bytes()


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"<build_manifest>",
        b"<?xml version='1.0'?><build_manifest><manifest_metadata></build_manifest>",
        b"not xml at all",
    ],
)
def test_malformed_xml_raises_parse_error(data: bytes) -> None:
    with pytest.raises(ManifestParseError):
        load(data)


def test_unknown_root_element_raises_parse_error() -> None:
    with pytest.raises(ManifestParseError, match="root element"):
        load(b"<project><manifest_metadata/></project>")


def test_missing_metadata_raises_parse_error() -> None:
    with pytest.raises(ManifestParseError, match="manifest_metadata"):
        load(b"<build_manifest><build_topology/></build_manifest>")


def test_empty_target_name_raises_parse_error() -> None:
    data = TEMPLATE.replace(b"<target_name>placeholder</target_name>", b"<target_name>  </target_name>")
    with pytest.raises(ManifestParseError, match="target_name"):
        load(data)


@pytest.mark.parametrize(
    "prolog",
    [
        b'<!DOCTYPE build_manifest [<!ENTITY x "expanded">]>\n',
        b"<!DOCTYPE build_manifest>\n",
        b'<!DOCTYPE build_manifest SYSTEM "build_manifest.dtd">\n',
    ],
    ids=["internal-entity", "bare", "external"],
)
def test_doctype_declarations_are_rejected(prolog: bytes) -> None:
    data = (
        b'<?xml version="1.0"?>\n'
        + prolog
        + b"<build_manifest><manifest_metadata><schema_version>1.0.0</schema_version>"
        b"<target_name>t</target_name></manifest_metadata>"
        b"<vendor_notes><note>plain</note></vendor_notes></build_manifest>"
    )
    with pytest.raises(ManifestParseError, match="DOCTYPE"):
        load(data)


def test_every_loadable_document_reloads_after_serialize() -> None:
    data = TEMPLATE.replace(
        b"</build_manifest>",
        b"  <!-- trailing note -->\n  <vendor_notes><note>a &amp; b</note></vendor_notes>\n</build_manifest>",
    )
    doc = load(data)
    again = load(serialize(doc))
    assert again == doc
    assert b"a &amp; b" in serialize(again)


def test_template_parses_into_typed_view() -> None:
    m = manifest_from_document(load(TEMPLATE))
    assert m.schema_version == "1.0.0"
    assert m.target_name == "placeholder"
    assert m.validation_level is ValidationLevel.BIDIRECTIONAL
    assert m.topology is not None and m.topology.kind is TopologyKind.STATIC_LIBRARY
    assert m.topology.fault_tolerant is True and m.topology.p2p_enabled is False
    assert m.component_validation is not None
    assert all(m.component_validation.claims().values())
    assert m.crypto is not None
    assert [s.name for s in m.crypto.steps] == [
        "structure_check",
        "artifact_presence",
        "content_integrity",
        "governance_claims",
    ]
    assert all(s.expected_result is ExpectedResult.PASS for s in m.crypto.steps)
    assert m.sources == () and m.artifacts == ()


def test_round_trip_law() -> None:
    doc = load(TEMPLATE)
    again = load(serialize(doc))
    assert again == doc
    assert manifest_from_document(again) == manifest_from_document(doc)


def test_reserialization_is_byte_identical() -> None:
    first = serialize(load(TEMPLATE))
    assert serialize(load(first)) == first
    assert first.startswith(b"<?xml version='1.0' encoding='UTF-8'?>")


def test_attribute_order_and_indentation_do_not_matter() -> None:
    a = (
        b'<build_manifest schema="obinexus.build_manifest" format="xml/1">'
        b"<manifest_metadata><schema_version>1.0.0</schema_version><target_name>t</target_name>"
        b"</manifest_metadata></build_manifest>"
    )
    b = (
        b'<build_manifest format="xml/1"\n    schema="obinexus.build_manifest">\n'
        b"    <manifest_metadata>\n        <schema_version>1.0.0</schema_version>\n"
        b"        <target_name>t</target_name>\n    </manifest_metadata>\n</build_manifest>\n"
    )
    assert serialize(load(a)) == serialize(load(b))


def test_unknown_sections_are_preserved() -> None:
    data = TEMPLATE.replace(
        b"</build_manifest>",
        b'  <signing_policy mode="detached"><key id="k1"/></signing_policy>\n</build_manifest>',
    )
    doc = load(data)
    out = serialize(doc)
    assert b'<signing_policy mode="detached">' in out
    m = manifest_from_document(load(out))
    assert len(m.extensions) == 1
    assert m.extensions[0].startswith("<signing_policy")


def test_invalid_field_values_raise_in_typed_view() -> None:
    data = TEMPLATE.replace(b"<fault_tolerant>true</fault_tolerant>", b"<fault_tolerant>yes</fault_tolerant>")
    doc = load(data)
    with pytest.raises(ManifestParseError, match="fault_tolerant"):
        manifest_from_document(doc)


def test_structure_validation_reports_problems() -> None:
    assert validate_structure(load(TEMPLATE)) == []

    errors = validate_structure(load(TEMPLATE), require_build_sections=True)
    paths = {e.path for e in errors}
    assert "source_files" in paths
    assert "build_artifacts" in paths

    bad = TEMPLATE.replace(b"<max_nodes>1</max_nodes>", b"<max_nodes>0</max_nodes>")
    errors = validate_structure(load(bad))
    assert errors
    assert "max_nodes" in first_error_message(errors)


def test_write_document_and_load_path(tmp_path: Path) -> None:
    out = tmp_path / "nested" / "m.xml"
    data = serialize(load(TEMPLATE))
    write_document(out, data)
    assert out.read_bytes() == data
    assert load_path(out) == load(TEMPLATE)
    assert [p.name for p in out.parent.iterdir()] == ["m.xml"]


def test_load_path_names_the_file(tmp_path: Path) -> None:
    p = tmp_path / "broken.xml"
    p.write_bytes(b"<build_manifest>")
    with pytest.raises(ManifestParseError, match="broken.xml"):
        load_path(p)
