"""Certificate emitter: record a verification outcome plus a digest index of
every manifest document produced by the build.

Certificates are append-only: each emission creates certificate-NNNN.json
and never replaces an earlier file. A build session persists its manifest
generations under build-NNNN with the same sequence number, so a later
build supersedes an earlier certificate without invalidating it.
Re-digesting the indexed documents and comparing against the certificate
reveals any later modification.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from buildseal.core.hash import DEFAULT_DIGEST_ALGORITHM, digest_file, is_hex_digest
from buildseal.core.jail import resolve_repo_rel_path
from buildseal.core.json_canon import pretty_json_bytes
from buildseal.core.time import parse_iso8601
from buildseal.manifest.model import ComponentValidation
from chain.verify_chain import ChainResult, StepState

logger = logging.getLogger(__name__)

CERTIFICATE_SCHEMA_VERSION = "1.0.0"
CERTIFICATE_PREFIX = "certificate-"
BUILD_DIR_PREFIX = "build-"
_CERT_NAME_RE = re.compile(r"^certificate-(\d{4,})\.json$")
_BUILD_DIR_RE = re.compile(r"^build-(\d{4,})$")


@dataclass(frozen=True)
class Certificate:
    build_status: str  # PASSED | FAILED
    target_name: str
    issued_at: str
    digest_algorithm: str
    steps: tuple[dict[str, Any], ...]
    checksum_index: dict[str, str]
    assertions: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": CERTIFICATE_SCHEMA_VERSION,
            "build_status": self.build_status,
            "target_name": self.target_name,
            "issued_at": self.issued_at,
            "digest_algorithm": self.digest_algorithm,
            "steps": [dict(s) for s in self.steps],
            "checksum_index": dict(sorted(self.checksum_index.items())),
            "assertions": list(self.assertions),
        }


def _step_record(outcome) -> dict[str, Any]:
    return {
        "name": outcome.name,
        "method": outcome.method,
        "expected_result": outcome.expected_result,
        "observed": outcome.observed,
        "state": outcome.state.value,
        "depends_on": outcome.depends_on,
        "message": outcome.message,
        "pointers": list(outcome.pointers),
    }


def build_certificate(
    result: ChainResult,
    documents: Mapping[str, Path],
    *,
    target_name: str,
    issued_at: str,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    component_validation: ComponentValidation | None = None,
) -> Certificate:
    """Assemble a certificate; `documents` maps document identifier -> persisted path."""

    parse_iso8601(issued_at)
    if not documents:
        raise ValueError("certificate requires at least one manifest document")

    index = {doc_id: digest_file(path, digest_algorithm) for doc_id, path in sorted(documents.items())}

    assertions: list[str] = []
    for doc_id, digest in index.items():
        assertions.append(f"document {doc_id} has {digest_algorithm} digest {digest}")
    for o in result.outcomes:
        if o.state is StepState.SKIPPED:
            assertions.append(f"step {o.name} ({o.method}) was SKIPPED: {o.message}")
        else:
            assertions.append(
                f"step {o.name} ({o.method}) {o.state.value}: expected {o.expected_result}, observed {o.observed}"
            )
    if component_validation is not None:
        for name, value in component_validation.claims().items():
            # Declared by the manifest, not derived by verification.
            assertions.append(f"declared claim {name}={'true' if value else 'false'}")
    assertions.append(f"build {target_name} verification {result.status.value}")

    return Certificate(
        build_status=result.status.value,
        target_name=target_name,
        issued_at=issued_at,
        digest_algorithm=digest_algorithm,
        steps=tuple(_step_record(o) for o in result.outcomes),
        checksum_index=index,
        assertions=tuple(assertions),
    )


def _sequence_numbers(out_dir: Path, pattern: re.Pattern[str] = _CERT_NAME_RE) -> list[int]:
    if not out_dir.is_dir():
        return []
    seqs: list[int] = []
    for p in out_dir.iterdir():
        m = pattern.match(p.name)
        if m:
            seqs.append(int(m.group(1)))
    return sorted(seqs)


def latest_certificate(out_dir: Path) -> Path | None:
    seqs = _sequence_numbers(out_dir)
    if not seqs:
        return None
    return out_dir / f"{CERTIFICATE_PREFIX}{seqs[-1]:04d}.json"


def reserve_build_dir(out_dir: Path) -> tuple[int, Path]:
    """Create build-NNNN under out_dir with a sequence number no certificate or build has used.

    Each build persists its generations there, so earlier builds and the
    certificates indexing them are never touched.
    """

    out_dir.mkdir(parents=True, exist_ok=True)
    used = _sequence_numbers(out_dir) + _sequence_numbers(out_dir, _BUILD_DIR_RE)
    seq = max(used, default=0) + 1
    while True:
        path = out_dir / f"{BUILD_DIR_PREFIX}{seq:04d}"
        try:
            path.mkdir()
        except FileExistsError:
            seq += 1
            continue
        logger.debug("reserved build directory %s", path)
        return seq, path


def emit_certificate(certificate: Certificate, out_dir: Path, *, sequence: int | None = None) -> Path:
    """Write the certificate as certificate-NNNN.json (never overwrites).

    With sequence, exactly that number is used and a collision raises
    FileExistsError; otherwise the next free number is taken.
    """

    out_dir.mkdir(parents=True, exist_ok=True)
    data = pretty_json_bytes(certificate.to_dict())
    if sequence is not None:
        path = out_dir / f"{CERTIFICATE_PREFIX}{sequence:04d}.json"
        with path.open("xb") as f:
            f.write(data)
        logger.info("certificate written: %s (%s)", path, certificate.build_status)
        return path

    seqs = _sequence_numbers(out_dir)
    seq = (seqs[-1] if seqs else 0) + 1
    while True:
        path = out_dir / f"{CERTIFICATE_PREFIX}{seq:04d}.json"
        try:
            with path.open("xb") as f:
                f.write(data)
        except FileExistsError:
            seq += 1
            continue
        logger.info("certificate written: %s (%s)", path, certificate.build_status)
        return path



def load_certificate(path: Path) -> dict[str, Any]:
    obj = json.loads(path.read_text(encoding="utf-8", errors="strict"))
    if not isinstance(obj, dict):
        raise ValueError("certificate must be a JSON object")
    for key in ("build_status", "checksum_index", "digest_algorithm", "steps"):
        if key not in obj:
            raise ValueError(f"certificate missing '{key}'")
    if not isinstance(obj["checksum_index"], dict):
        raise ValueError("certificate.checksum_index must be an object")
    return obj


def check_certificate(path: Path, *, documents_dir: Path | None = None) -> list[str]:
    """Recompute the digest index; return human-readable mismatches (empty if intact).

    Document identifiers are POSIX paths relative to documents_dir, which
    defaults to the certificate's own directory.
    """

    cert = load_certificate(path)
    root = documents_dir if documents_dir is not None else path.parent
    algorithm = str(cert["digest_algorithm"])
    problems: list[str] = []
    for doc_id, recorded in sorted(cert["checksum_index"].items()):
        if not isinstance(recorded, str) or not is_hex_digest(recorded, algorithm):
            problems.append(f"{doc_id}: recorded digest is not a valid {algorithm} digest")
            continue
        try:
            doc_path = resolve_repo_rel_path(root, doc_id, must_exist=False, forbid_symlinks=False)
            current = digest_file(doc_path, algorithm)
        except (OSError, ValueError) as e:
            problems.append(f"{doc_id}: unreadable ({e})")
            continue
        if current != recorded:
            problems.append(f"{doc_id}: recorded {recorded}, current {current}")
    return problems
