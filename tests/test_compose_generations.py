from __future__ import annotations

import hashlib
import sys
from pathlib import Path

import pytest

pytestmark = pytest.mark.repo_local

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from buildseal.config import ArtifactSpec, read_builtin_template_bytes
from buildseal.core.errors import ArtifactNotBuiltError, GenerationError, MissingTemplateError
from buildseal.core.trace_log import TraceLog
from buildseal.manifest.document import CRYPTOGRAPHIC_VERIFICATION, METADATA, child_elements
from buildseal.manifest.loader import load
from buildseal.manifest.model import ArtifactKind, SourceFile, manifest_from_document
from chain.compose_manifest import (
    BUILD,
    PROJECT,
    UPDATED,
    BuildFacts,
    Generation,
    compose_build,
    compose_generations,
    compose_project,
    compose_updated,
    persist_generations,
)


TS = "2026-01-02T03:04:05+00:00"
TARGET = "obinexus_gov_clock_build"


def _write(p: Path, data: bytes) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
    return p


@pytest.fixture()
def build_root(tmp_path: Path) -> Path:
    _write(tmp_path / "manifests" / "template.xml", read_builtin_template_bytes())
    _write(tmp_path / "src" / "a.c", b"int a(void) { return 1; }\n")
    _write(tmp_path / "src" / "b.c", b"int b(void) { return 2; }\n")
    _write(tmp_path / "build" / "lib" / "libgov_clock.a", b"!<arch>\nfake archive\n")
    return tmp_path


def _facts(root: Path, **overrides) -> BuildFacts:
    kw = dict(
        base_dir=root,
        target_name=TARGET,
        build_timestamp=TS,
        sources=("src/a.c", "src/b.c"),
        artifacts=(ArtifactSpec(path="build/lib/libgov_clock.a", kind=ArtifactKind.STATIC_LIBRARY),),
        max_workers=4,
    )
    kw.update(overrides)
    return BuildFacts(**kw)


def test_project_generation_is_verbatim_template(build_root: Path) -> None:
    template = build_root / "manifests" / "template.xml"
    project = compose_project(template)
    assert project.name == PROJECT
    assert project.data == template.read_bytes()


def test_missing_template_raises(build_root: Path) -> None:
    with pytest.raises(MissingTemplateError):
        compose_project(build_root / "manifests" / "absent.xml")


def test_updated_replaces_target_and_timestamp_only(build_root: Path) -> None:
    project = compose_project(build_root / "manifests" / "template.xml")
    updated = compose_updated(project, build_timestamp=TS, target_name=TARGET)

    assert updated.name == UPDATED
    assert updated.document.field(METADATA, "target_name") == TARGET
    assert updated.document.field(METADATA, "build_timestamp") == TS
    for name in ("schema_version", "validation_level"):
        assert updated.document.field(METADATA, name) == project.document.field(METADATA, name)
    # The predecessor is untouched.
    assert project.document.field(METADATA, "target_name") == "placeholder"
    assert updated.document.section_tags() == project.document.section_tags()


def test_updated_rejects_bad_timestamp(build_root: Path) -> None:
    project = compose_project(build_root / "manifests" / "template.xml")
    with pytest.raises(ValueError):
        compose_updated(project, build_timestamp="yesterday", target_name=TARGET)


def test_build_records_sources_in_declared_order(build_root: Path) -> None:
    project, updated, build = compose_generations(build_root / "manifests" / "template.xml", _facts(build_root))

    m = manifest_from_document(build.document)
    assert m.sources == (
        SourceFile("src/a.c", hashlib.sha256((build_root / "src" / "a.c").read_bytes()).hexdigest()),
        SourceFile("src/b.c", hashlib.sha256((build_root / "src" / "b.c").read_bytes()).hexdigest()),
    )
    assert len(m.artifacts) == 1
    art = m.artifacts[0]
    assert art.name == "libgov_clock.a"
    assert art.location == "build/lib/libgov_clock.a"
    assert art.kind is ArtifactKind.STATIC_LIBRARY
    assert art.digest == hashlib.sha256(b"!<arch>\nfake archive\n").hexdigest()


def test_build_section_placement(build_root: Path) -> None:
    _, _, build = compose_generations(build_root / "manifests" / "template.xml", _facts(build_root))

    assert build.document.section_tags() == [
        "manifest_metadata",
        "source_files",
        "build_topology",
        "component_validation",
        "cryptographic_verification",
    ]
    crypto_children = [c.tag for c in child_elements(build.document.require(CRYPTOGRAPHIC_VERIFICATION))]
    assert crypto_children[-1] == "build_artifacts"
    assert crypto_children.count("build_artifacts") == 1


def test_build_composition_is_idempotent(build_root: Path) -> None:
    template = build_root / "manifests" / "template.xml"
    _, updated, build = compose_generations(template, _facts(build_root))
    _, _, again = compose_generations(template, _facts(build_root))
    assert again.data == build.data

    # Re-running the build step over an already-built tree adds nothing.
    rebuilt = compose_build(Generation(name=UPDATED, document=build.document, data=build.data), _facts(build_root))
    assert rebuilt.data == build.data
    assert rebuilt.document.section_tags().count("source_files") == 1


def test_build_bytes_round_trip(build_root: Path) -> None:
    _, _, build = compose_generations(build_root / "manifests" / "template.xml", _facts(build_root))
    assert load(build.data) == build.document


def test_missing_artifact_aborts_before_persisting(build_root: Path) -> None:
    (build_root / "build" / "lib" / "libgov_clock.a").unlink()
    trace = TraceLog(deterministic=True)

    with pytest.raises(GenerationError) as ei:
        compose_generations(build_root / "manifests" / "template.xml", _facts(build_root), trace=trace)

    assert ei.value.generation == BUILD
    assert isinstance(ei.value.cause, ArtifactNotBuiltError)
    assert "libgov_clock.a" in str(ei.value)
    assert [e.event for e in trace.entries][-1] == "generation.failed"
    assert not (build_root / "build" / "manifests").exists()


def test_missing_source_names_build_generation(build_root: Path) -> None:
    facts = _facts(build_root, sources=("src/a.c", "src/missing.c"))
    with pytest.raises(GenerationError) as ei:
        compose_generations(build_root / "manifests" / "template.xml", facts)
    assert ei.value.generation == BUILD
    assert isinstance(ei.value.cause, OSError)


def test_missing_template_names_project_generation(build_root: Path) -> None:
    with pytest.raises(GenerationError) as ei:
        compose_generations(build_root / "manifests" / "nope.xml", _facts(build_root))
    assert ei.value.generation == PROJECT
    assert isinstance(ei.value.cause, MissingTemplateError)


def test_builtin_template_bytes_are_accepted(build_root: Path) -> None:
    project, _, _ = compose_generations(None, _facts(build_root), template_bytes=read_builtin_template_bytes())
    assert project.data == read_builtin_template_bytes()


def test_persist_writes_three_files(build_root: Path) -> None:
    generations = compose_generations(build_root / "manifests" / "template.xml", _facts(build_root))
    out = build_root / "out"
    written = persist_generations(generations, out)

    assert sorted(p.name for p in written.values()) == [
        "build_manifest.xml",
        "project_manifest.xml",
        "updated_manifest.xml",
    ]
    for g in generations:
        assert written[g.name].read_bytes() == g.data


def test_persist_rejects_out_of_order_generations(build_root: Path) -> None:
    project, updated, build = compose_generations(build_root / "manifests" / "template.xml", _facts(build_root))
    with pytest.raises(ValueError):
        persist_generations((build, project), build_root / "out")
