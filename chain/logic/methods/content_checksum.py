from __future__ import annotations

from buildseal.core.hash import digest_file
from chain.logic.base import MethodResult, failed, passed, resolve_declared_path
from chain.logic.methods.context import VerifyContext

METHOD_ID = "content_checksum"


def run(ctx: VerifyContext) -> MethodResult:
    m = ctx.manifest
    entries: list[tuple[str, str, str, str]] = []
    for src in m.sources:
        entries.append(("source", src.path, src.digest, src.algorithm or m.digest_algorithm))
    for art in m.artifacts:
        entries.append(("artifact", art.location, art.digest, art.algorithm or m.digest_algorithm))

    if not entries:
        return failed(METHOD_ID, "manifest declares no source files or build artifacts to checksum")

    mismatches: list[str] = []
    for role, rel, declared, algorithm in entries:
        try:
            path = resolve_declared_path(ctx.base_dir, rel)
            computed = digest_file(path, algorithm)
        except (OSError, ValueError) as e:
            mismatches.append(f"{role} {rel}: unreadable ({e})")
            continue
        if computed != declared:
            mismatches.append(f"{role} {rel}: declared {declared}, computed {computed}")

    if mismatches:
        return failed(
            METHOD_ID,
            f"{len(mismatches)} of {len(entries)} digests do not match: " + "; ".join(mismatches),
            pointers=[x.split(":", 1)[0] for x in mismatches],
        )
    return passed(METHOD_ID, f"{len(m.sources)} source and {len(m.artifacts)} artifact digests verify")
