from __future__ import annotations

from dataclasses import dataclass

from buildseal.core.errors import ManifestParseError
from buildseal.core.hash import SUPPORTED_ALGORITHMS, is_hex_digest
from buildseal.core.time import parse_iso8601
from buildseal.manifest.document import (
    BUILD_ARTIFACTS,
    CRYPTOGRAPHIC_VERIFICATION,
    FORMAT_ID,
    METADATA,
    ROOT_TAG,
    SCHEMA_ID,
    SECTION_ORDER,
    SOURCE_FILES,
    ManifestDocument,
    child_elements,
)
from buildseal.manifest.model import manifest_from_document


@dataclass(frozen=True)
class SchemaError:
    path: str
    message: str


REQUIRED_SECTIONS = (METADATA, "build_topology", "component_validation", CRYPTOGRAPHIC_VERIFICATION)


def validate_structure(document: ManifestDocument, *, require_build_sections: bool = False) -> list[SchemaError]:
    """Check a manifest against the persisted document shape.

    Covers root identifiers, section presence and relative order, field
    types (booleans, enums, digests, timestamps) and unique step names.
    With require_build_sections, source_files and build_artifacts must be
    present too. Returns a stable, sorted list of SchemaError objects.
    """

    errors: list[SchemaError] = []

    def err(p: str, msg: str) -> None:
        errors.append(SchemaError(path=p, message=msg))

    root = document.root
    if root.tag != ROOT_TAG:
        err(ROOT_TAG, f"unexpected root element <{root.tag}>")
        return errors
    if root.get("schema") != SCHEMA_ID:
        err(f"{ROOT_TAG}@schema", f"expected {SCHEMA_ID!r}, got {root.get('schema')!r}")
    if root.get("format") != FORMAT_ID:
        err(f"{ROOT_TAG}@format", f"expected {FORMAT_ID!r}, got {root.get('format')!r}")

    # Known sections must appear in canonical order; unknown ones may sit anywhere.
    known = [c.tag for c in child_elements(root) if c.tag in SECTION_ORDER]
    if len(set(known)) != len(known):
        err(ROOT_TAG, "duplicate top-level section")
    ranks = [SECTION_ORDER.index(t) for t in known]
    if ranks != sorted(ranks):
        err(ROOT_TAG, f"sections out of order: {known}")

    required = list(REQUIRED_SECTIONS)
    if require_build_sections:
        required.append(SOURCE_FILES)
    for name in required:
        if document.get(name) is None:
            err(name, "missing required section")
    if require_build_sections and document.get(f"{CRYPTOGRAPHIC_VERIFICATION}/{BUILD_ARTIFACTS}") is None \
            and document.get(BUILD_ARTIFACTS) is None:
        err(BUILD_ARTIFACTS, "missing required section")

    try:
        manifest = manifest_from_document(document)
    except ManifestParseError as e:
        err(ROOT_TAG, str(e))
        errors.sort(key=lambda e: (e.path, e.message))
        return errors

    if manifest.build_timestamp is not None:
        try:
            parse_iso8601(manifest.build_timestamp)
        except ValueError as e:
            err(f"{METADATA}.build_timestamp", str(e))
    elif require_build_sections:
        err(f"{METADATA}.build_timestamp", "missing")

    algorithm = manifest.digest_algorithm
    if algorithm not in SUPPORTED_ALGORITHMS:
        err(f"{CRYPTOGRAPHIC_VERIFICATION}.digest_algorithm", f"unsupported algorithm {algorithm!r}")

    seen_paths: set[str] = set()
    for i, src in enumerate(manifest.sources):
        alg = src.algorithm or algorithm
        if not is_hex_digest(src.digest, alg):
            err(f"{SOURCE_FILES}[{i}].digest", f"not a lowercase {alg} hex digest")
        if src.path in seen_paths:
            err(f"{SOURCE_FILES}[{i}].path", f"duplicate source path {src.path!r}")
        seen_paths.add(src.path)

    for i, art in enumerate(manifest.artifacts):
        alg = art.algorithm or algorithm
        if not is_hex_digest(art.digest, alg):
            err(f"{BUILD_ARTIFACTS}[{i}].digest", f"not a lowercase {alg} hex digest")

    steps = manifest.crypto.steps if manifest.crypto is not None else ()
    names = [s.name for s in steps]
    for name in sorted({n for n in names if names.count(n) > 1}):
        err(f"{CRYPTOGRAPHIC_VERIFICATION}.verification_chain", f"duplicate step name {name!r}")

    errors.sort(key=lambda e: (e.path, e.message))
    return errors


def first_error_message(errors: list[SchemaError]) -> str:
    if not errors:
        return ""
    first = errors[0]
    return f"{first.path}: {first.message}"

