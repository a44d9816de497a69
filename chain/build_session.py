"""One build invocation: compose -> persist -> verify -> certify.

The session owns its document trees and its TraceLog. Each session reserves
a fresh build-NNNN directory under the output directory; the generations and
the trace land there and the certificate takes the same sequence number, so
nothing a previous build persisted is ever rewritten. The trace is flushed
once when the session ends, whether it ended in a certificate or an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from buildseal.config import BuildConfig, read_builtin_template_bytes
from buildseal.core.jail import resolve_repo_rel_path
from buildseal.core.time import utc_timestamp_iso
from buildseal.core.trace_log import TRACE_LOG_FILENAME, TraceLog
from buildseal.manifest.model import manifest_from_document
from chain.certify import build_certificate, emit_certificate, reserve_build_dir
from chain.compose_manifest import BUILD, BuildFacts, Generation, compose_generations, persist_generations
from chain.verify_chain import ChainResult, verify_manifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResult:
    manifests: dict[str, Path]
    chain: ChainResult
    certificate_path: Path
    trace_path: Path
    build_dir: Path

    @property
    def exit_code(self) -> int:
        return 0 if self.chain.passed else 1


@dataclass
class BuildSession:
    repo_root: Path
    config: BuildConfig
    deterministic: bool = False
    build_timestamp: str | None = None
    trace: TraceLog = field(init=False)

    def __post_init__(self) -> None:
        self.repo_root = self.repo_root.resolve()
        self.trace = TraceLog(deterministic=self.deterministic)

    @property
    def out_dir(self) -> Path:
        return resolve_repo_rel_path(self.repo_root, self.config.output_dir, must_exist=False)

    def _template_path(self) -> Path | None:
        if self.config.template is None:
            return None
        # Existence is checked by the composer (MissingTemplateError).
        return resolve_repo_rel_path(self.repo_root, self.config.template, must_exist=False)

    def _schema_path(self) -> Path | None:
        if self.config.schema is None:
            return None
        return resolve_repo_rel_path(self.repo_root, self.config.schema, must_exist=True, must_be_file=True)

    def facts(self) -> BuildFacts:
        ts = self.build_timestamp or utc_timestamp_iso(deterministic=self.deterministic)
        return BuildFacts(
            base_dir=self.repo_root,
            target_name=self.config.target_name,
            build_timestamp=ts,
            sources=self.config.sources,
            artifacts=self.config.artifacts,
            digest_algorithm=self.config.digest_algorithm,
            max_workers=self.config.max_workers,
        )

    def compose(self) -> tuple[Generation, Generation, Generation]:
        template_path = self._template_path()
        template_bytes = read_builtin_template_bytes() if template_path is None else None
        return compose_generations(template_path, self.facts(), template_bytes=template_bytes, trace=self.trace)

    def _persist(self, generations: tuple[Generation, ...], build_dir: Path) -> dict[str, Path]:
        written = persist_generations(generations, build_dir)
        for name, path in written.items():
            self.trace.record("manifest.persisted", name, path.relative_to(build_dir.parent).as_posix())
        return written

    def generate(self) -> dict[str, Path]:
        """Compose and persist the three generations without verifying."""

        _, build_dir = reserve_build_dir(self.out_dir)
        try:
            return self._persist(self.compose(), build_dir)
        finally:
            self.trace.flush(build_dir / TRACE_LOG_FILENAME)

    def run(self) -> SessionResult:
        out_dir = self.out_dir
        seq, build_dir = reserve_build_dir(out_dir)
        self.trace.record("session.started", self.config.target_name, build_dir.name)
        try:
            generations = self.compose()
            written = self._persist(generations, build_dir)

            result = verify_manifest(written[BUILD], base_dir=self.repo_root, schema_path=self._schema_path())
            for o in result.outcomes:
                self.trace.record("verify.step", o.name, o.state.value)
            self.trace.record("verify.chain", self.config.target_name, result.status.value)

            build_manifest = manifest_from_document(generations[-1].document)
            cert = build_certificate(
                result,
                # Identifiers are relative to the certificate's directory.
                {path.relative_to(out_dir).as_posix(): path for path in written.values()},
                target_name=self.config.target_name,
                issued_at=utc_timestamp_iso(deterministic=self.deterministic),
                digest_algorithm=self.config.digest_algorithm,
                component_validation=build_manifest.component_validation,
            )
            cert_path = emit_certificate(cert, out_dir, sequence=seq)
            self.trace.record("certificate.emitted", cert_path.name, cert.build_status)
        except Exception as e:
            self.trace.record("session.aborted", self.config.target_name, str(e))
            raise
        finally:
            trace_path = self.trace.flush(build_dir / TRACE_LOG_FILENAME)

        logger.info("build session for %s finished: %s", self.config.target_name, result.status.value)
        return SessionResult(
            manifests=written,
            chain=result,
            certificate_path=cert_path,
            trace_path=trace_path,
            build_dir=build_dir,
        )
