"""Manifest composer: derive the project, updated and build manifest generations.

- project: verbatim copy of the source template (must exist and parse)
- updated: project + build_timestamp and target_name field replacement
- build:   updated + source_files (before build_topology) and build_artifacts
           (last child of cryptographic_verification), digests computed now

Each generation is a pure function of its predecessor and the build facts;
every edit is a tree operation on a private copy of the predecessor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from buildseal.config import ArtifactSpec
from buildseal.core.errors import ArtifactNotBuiltError, GenerationError, MissingTemplateError
from buildseal.core.hash import DEFAULT_DIGEST_ALGORITHM, digest_files, require_algorithm
from buildseal.core.jail import resolve_repo_rel_path
from buildseal.core.time import parse_iso8601
from buildseal.core.trace_log import TraceLog
from buildseal.manifest.document import (
    BUILD_ARTIFACTS,
    BUILD_TOPOLOGY,
    CRYPTOGRAPHIC_VERIFICATION,
    METADATA,
    ManifestDocument,
)
from buildseal.manifest.loader import load, serialize, write_document
from buildseal.manifest.model import (
    BuildArtifact,
    SourceFile,
    build_artifacts_element,
    source_files_element,
)

logger = logging.getLogger(__name__)

PROJECT = "project"
UPDATED = "updated"
BUILD = "build"
GENERATION_ORDER = (PROJECT, UPDATED, BUILD)

GENERATION_FILENAMES = {
    PROJECT: "project_manifest.xml",
    UPDATED: "updated_manifest.xml",
    BUILD: "build_manifest.xml",
}


@dataclass(frozen=True)
class BuildFacts:
    base_dir: Path
    target_name: str
    build_timestamp: str
    sources: tuple[str, ...]
    artifacts: tuple[ArtifactSpec, ...]
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    max_workers: int | None = None


@dataclass(frozen=True)
class Generation:
    name: str
    document: ManifestDocument
    data: bytes  # exact bytes to persist

    @property
    def filename(self) -> str:
        return GENERATION_FILENAMES[self.name]


def compose_project(template_path: Path) -> Generation:
    if not template_path.is_file():
        raise MissingTemplateError(template_path)
    data = template_path.read_bytes()
    return compose_project_from_bytes(data)


def compose_project_from_bytes(data: bytes) -> Generation:
    document = load(data)
    return Generation(name=PROJECT, document=document, data=bytes(data))


def compose_updated(project: Generation, *, build_timestamp: str, target_name: str) -> Generation:
    parse_iso8601(build_timestamp)
    if not isinstance(target_name, str) or not target_name.strip():
        raise ValueError("target_name missing/empty")

    document = project.document.copy()
    document.set_field(METADATA, "build_timestamp", build_timestamp)
    document.set_field(METADATA, "target_name", target_name.strip())
    return Generation(name=UPDATED, document=document, data=serialize(document))


def _resolve(base_dir: Path, rel: str) -> Path:
    return resolve_repo_rel_path(base_dir, rel, must_exist=False, allow_backslashes=False, forbid_symlinks=False)


def collect_sources(facts: BuildFacts) -> list[SourceFile]:
    paths = [_resolve(facts.base_dir, rel) for rel in facts.sources]
    digests = digest_files(paths, facts.digest_algorithm, max_workers=facts.max_workers)
    return [SourceFile(path=rel, digest=d) for rel, d in zip(facts.sources, digests)]


def collect_artifacts(facts: BuildFacts) -> list[BuildArtifact]:
    paths = [_resolve(facts.base_dir, a.path) for a in facts.artifacts]
    # Every artifact must exist before any digest is taken.
    for spec, path in zip(facts.artifacts, paths):
        if not path.is_file():
            raise ArtifactNotBuiltError(spec.path)
    digests = digest_files(paths, facts.digest_algorithm, max_workers=facts.max_workers)
    return [
        BuildArtifact(name=spec.display_name, kind=spec.kind, digest=d, path=spec.path)
        for spec, d in zip(facts.artifacts, digests)
    ]


def compose_build(updated: Generation, facts: BuildFacts) -> Generation:
    algorithm = require_algorithm(facts.digest_algorithm)
    artifacts = collect_artifacts(facts)
    sources = collect_sources(facts)

    document = updated.document.copy()
    document.insert_before(BUILD_TOPOLOGY, source_files_element(sources, algorithm=algorithm))
    # A top-level build_artifacts section from the template is superseded.
    document.remove(BUILD_ARTIFACTS)
    document.append_child(
        CRYPTOGRAPHIC_VERIFICATION,
        build_artifacts_element(artifacts, algorithm=algorithm),
        replace_existing=True,
    )
    return Generation(name=BUILD, document=document, data=serialize(document))


def compose_generations(
    template_path: Path | None,
    facts: BuildFacts,
    *,
    template_bytes: bytes | None = None,
    trace: TraceLog | None = None,
) -> tuple[Generation, Generation, Generation]:
    """Compose all three generations or none.

    Any failure is raised as GenerationError naming the generation that failed.
    """

    def note(event: str, subject: str, detail: str = "") -> None:
        if trace is not None:
            trace.record(event, subject, detail)

    current = PROJECT
    try:
        if template_path is not None:
            project = compose_project(template_path)
            note("generation.project", str(template_path))
        elif template_bytes is not None:
            project = compose_project_from_bytes(template_bytes)
            note("generation.project", "<builtin template>")
        else:
            raise MissingTemplateError("<none>")

        current = UPDATED
        updated = compose_updated(project, build_timestamp=facts.build_timestamp, target_name=facts.target_name)
        note("generation.updated", facts.target_name, facts.build_timestamp)

        current = BUILD
        build = compose_build(updated, facts)
        note(
            "generation.build",
            facts.target_name,
            f"{len(facts.sources)} sources, {len(facts.artifacts)} artifacts",
        )
    except Exception as e:
        note("generation.failed", current, str(e))
        raise GenerationError(current, e) from e

    logger.info("composed %s generations for %s", "/".join(GENERATION_ORDER), facts.target_name)
    return project, updated, build


def persist_generations(generations: tuple[Generation, ...] | list[Generation], out_dir: Path) -> dict[str, Path]:
    """Write composed generations; only call once every generation composed."""

    names = [g.name for g in generations]
    if names != list(GENERATION_ORDER[: len(names)]):
        raise ValueError(f"generations out of order: {names}")
    written: dict[str, Path] = {}
    for g in generations:
        written[g.name] = write_document(out_dir / g.filename, g.data)
    return written
