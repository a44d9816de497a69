"""Typed view over a ManifestDocument, plus element builders for the composer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from lxml import etree

from buildseal.core.errors import ManifestParseError
from buildseal.core.hash import DEFAULT_DIGEST_ALGORITHM
from buildseal.manifest.document import (
    BUILD_ARTIFACTS,
    BUILD_TOPOLOGY,
    COMPONENT_VALIDATION,
    CRYPTOGRAPHIC_VERIFICATION,
    METADATA,
    SOURCE_FILES,
    SECTION_ORDER,
    ManifestDocument,
    child_elements,
    format_field_value,
)


class ValidationLevel(str, Enum):
    NONE = "none"
    UNIDIRECTIONAL = "unidirectional"
    BIDIRECTIONAL = "bidirectional"


class ArtifactKind(str, Enum):
    STATIC_LIBRARY = "STATIC_LIBRARY"
    EXECUTABLE = "EXECUTABLE"
    OTHER = "OTHER"


class TopologyKind(str, Enum):
    STATIC_LIBRARY = "STATIC_LIBRARY"
    EXECUTABLE = "EXECUTABLE"


class ExpectedResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"


COMPONENT_FLAGS = (
    "immutability_verified",
    "data_logic_separation_verified",
    "transparency_verified",
    "principles_enforced",
)


@dataclass(frozen=True)
class SourceFile:
    path: str
    digest: str
    algorithm: str | None = None  # None: document default


@dataclass(frozen=True)
class BuildArtifact:
    name: str
    kind: ArtifactKind
    digest: str
    path: str | None = None  # None: same as name
    algorithm: str | None = None

    @property
    def location(self) -> str:
        return self.path or self.name


@dataclass(frozen=True)
class BuildTopology:
    kind: TopologyKind
    fault_tolerant: bool
    p2p_enabled: bool
    max_nodes: int


@dataclass(frozen=True)
class ComponentValidation:
    immutability_verified: bool
    data_logic_separation_verified: bool
    transparency_verified: bool
    principles_enforced: bool

    def claims(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in COMPONENT_FLAGS}


@dataclass(frozen=True)
class VerificationStep:
    name: str
    method: str
    expected_result: ExpectedResult = ExpectedResult.PASS
    depends_on: str | None = None


@dataclass(frozen=True)
class CryptographicVerification:
    digest_algorithm: str
    signature_algorithm: str | None
    steps: tuple[VerificationStep, ...]


@dataclass(frozen=True)
class Manifest:
    schema_version: str
    build_timestamp: str | None
    target_name: str
    validation_level: ValidationLevel
    sources: tuple[SourceFile, ...]
    topology: BuildTopology | None
    component_validation: ComponentValidation | None
    crypto: CryptographicVerification | None
    artifacts: tuple[BuildArtifact, ...]
    # Canonical XML of unrecognized top-level sections, in document order.
    extensions: tuple[str, ...] = field(default=())

    @property
    def digest_algorithm(self) -> str:
        if self.crypto is not None:
            return self.crypto.digest_algorithm
        return DEFAULT_DIGEST_ALGORITHM


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

def _text(node: etree._Element | None) -> str | None:
    if node is None:
        return None
    return (node.text or "").strip()


def _child(node: etree._Element, tag: str) -> etree._Element | None:
    for c in child_elements(node):
        if c.tag == tag:
            return c
    return None


def parse_bool(raw: str | None, *, where: str) -> bool:
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise ManifestParseError(f"{where} must be literal 'true' or 'false', got {raw!r}")


def parse_enum(enum_cls, raw: str | None, *, where: str):
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ManifestParseError(f"{where} must be one of {allowed}, got {raw!r}") from None


def parse_positive_int(raw: str | None, *, where: str) -> int:
    try:
        value = int(raw or "")
    except ValueError:
        raise ManifestParseError(f"{where} must be a positive integer, got {raw!r}") from None
    if value < 1:
        raise ManifestParseError(f"{where} must be a positive integer, got {raw!r}")
    return value


def _require_attr(node: etree._Element, name: str, *, where: str) -> str:
    value = node.get(name)
    if value is None or not value.strip():
        raise ManifestParseError(f"{where} missing attribute '{name}'")
    return value.strip()


def _read_sources(section: etree._Element | None) -> tuple[SourceFile, ...]:
    if section is None:
        return ()
    out: list[SourceFile] = []
    for i, node in enumerate(child_elements(section)):
        if node.tag != "source_file":
            continue
        where = f"source_files[{i}]"
        out.append(
            SourceFile(
                path=_require_attr(node, "path", where=where),
                digest=_require_attr(node, "digest", where=where),
                algorithm=node.get("algorithm"),
            )
        )
    return tuple(out)


def _read_artifacts(section: etree._Element | None) -> tuple[BuildArtifact, ...]:
    if section is None:
        return ()
    out: list[BuildArtifact] = []
    for i, node in enumerate(child_elements(section)):
        if node.tag != "artifact":
            continue
        where = f"build_artifacts[{i}]"
        out.append(
            BuildArtifact(
                name=_require_attr(node, "name", where=where),
                kind=parse_enum(ArtifactKind, node.get("kind"), where=f"{where}.kind"),
                digest=_require_attr(node, "digest", where=where),
                path=node.get("path"),
                algorithm=node.get("algorithm"),
            )
        )
    return tuple(out)


def _read_topology(section: etree._Element | None) -> BuildTopology | None:
    if section is None:
        return None
    return BuildTopology(
        kind=parse_enum(TopologyKind, _text(_child(section, "kind")), where="build_topology.kind"),
        fault_tolerant=parse_bool(_text(_child(section, "fault_tolerant")), where="build_topology.fault_tolerant"),
        p2p_enabled=parse_bool(_text(_child(section, "p2p_enabled")), where="build_topology.p2p_enabled"),
        max_nodes=parse_positive_int(_text(_child(section, "max_nodes")), where="build_topology.max_nodes"),
    )


def _read_component_validation(section: etree._Element | None) -> ComponentValidation | None:
    if section is None:
        return None
    values = {
        name: parse_bool(_text(_child(section, name)), where=f"component_validation.{name}")
        for name in COMPONENT_FLAGS
    }
    return ComponentValidation(**values)


def read_steps(chain: etree._Element | None) -> tuple[VerificationStep, ...]:
    if chain is None:
        return ()
    steps: list[VerificationStep] = []
    for i, node in enumerate(child_elements(chain)):
        if node.tag != "verification_step":
            continue
        where = f"verification_chain[{i}]"
        expected_raw = node.get("expected_result", ExpectedResult.PASS.value)
        depends_on = node.get("depends_on")
        steps.append(
            VerificationStep(
                name=_require_attr(node, "name", where=where),
                method=_require_attr(node, "method", where=where),
                expected_result=parse_enum(ExpectedResult, expected_raw, where=f"{where}.expected_result"),
                depends_on=depends_on.strip() if depends_on and depends_on.strip() else None,
            )
        )
    return tuple(steps)


def _read_crypto(section: etree._Element | None) -> CryptographicVerification | None:
    if section is None:
        return None
    return CryptographicVerification(
        digest_algorithm=_text(_child(section, "digest_algorithm")) or DEFAULT_DIGEST_ALGORITHM,
        signature_algorithm=_text(_child(section, "signature_algorithm")) or None,
        steps=read_steps(_child(section, "verification_chain")),
    )


def manifest_from_document(document: ManifestDocument) -> Manifest:
    """Build the typed view. Raises ManifestParseError on invalid field values."""

    root = document.root
    meta = document.get(METADATA)
    if meta is None:
        raise ManifestParseError("missing <manifest_metadata> section")

    schema_version = _text(_child(meta, "schema_version"))
    target_name = _text(_child(meta, "target_name"))
    if not schema_version:
        raise ManifestParseError("manifest_metadata.schema_version missing/empty")
    if not target_name:
        raise ManifestParseError("manifest_metadata.target_name missing/empty")

    level_raw = _text(_child(meta, "validation_level")) or ValidationLevel.NONE.value
    crypto_section = document.get(CRYPTOGRAPHIC_VERIFICATION)

    # build_artifacts normally sits at the end of cryptographic_verification;
    # a top-level section is accepted too.
    artifacts_section = document.get(f"{CRYPTOGRAPHIC_VERIFICATION}/{BUILD_ARTIFACTS}")
    if artifacts_section is None:
        artifacts_section = document.get(BUILD_ARTIFACTS)

    extensions = tuple(
        etree.tostring(c, method="c14n").decode("utf-8")
        for c in child_elements(root)
        if c.tag not in SECTION_ORDER
    )

    return Manifest(
        schema_version=schema_version,
        build_timestamp=_text(_child(meta, "build_timestamp")) or None,
        target_name=target_name,
        validation_level=parse_enum(ValidationLevel, level_raw, where="manifest_metadata.validation_level"),
        sources=_read_sources(document.get(SOURCE_FILES)),
        topology=_read_topology(document.get(BUILD_TOPOLOGY)),
        component_validation=_read_component_validation(document.get(COMPONENT_VALIDATION)),
        crypto=_read_crypto(crypto_section),
        artifacts=_read_artifacts(artifacts_section),
        extensions=extensions,
    )


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------

def source_files_element(sources: list[SourceFile], *, algorithm: str) -> etree._Element:
    section = etree.Element(SOURCE_FILES)
    section.set("digest_algorithm", algorithm)
    for src in sources:
        node = etree.SubElement(section, "source_file")
        node.set("path", src.path)
        node.set("digest", src.digest)
        if src.algorithm and src.algorithm != algorithm:
            node.set("algorithm", src.algorithm)
    return section


def build_artifacts_element(artifacts: list[BuildArtifact], *, algorithm: str) -> etree._Element:
    section = etree.Element(BUILD_ARTIFACTS)
    section.set("digest_algorithm", algorithm)
    for art in artifacts:
        node = etree.SubElement(section, "artifact")
        node.set("name", art.name)
        node.set("kind", format_field_value(art.kind))
        node.set("digest", art.digest)
        if art.path and art.path != art.name:
            node.set("path", art.path)
        if art.algorithm and art.algorithm != algorithm:
            node.set("algorithm", art.algorithm)
    return section
