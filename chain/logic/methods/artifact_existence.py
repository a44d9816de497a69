from __future__ import annotations

from chain.logic.base import MethodResult, failed, passed, resolve_declared_path
from chain.logic.methods.context import VerifyContext

METHOD_ID = "artifact_existence"


def run(ctx: VerifyContext) -> MethodResult:
    artifacts = ctx.manifest.artifacts
    if not artifacts:
        return failed(METHOD_ID, "manifest declares no build artifacts")

    missing: list[str] = []
    for art in artifacts:
        try:
            path = resolve_declared_path(ctx.base_dir, art.location)
        except ValueError as e:
            missing.append(f"{art.location} ({e})")
            continue
        if not path.is_file():
            missing.append(art.location)

    if missing:
        return failed(METHOD_ID, "missing build artifacts: " + ", ".join(missing), pointers=missing)
    return passed(METHOD_ID, f"{len(artifacts)} build artifact(s) present")
