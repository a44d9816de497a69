from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from buildseal.core.jail import resolve_repo_rel_path


Observation = str  # "pass" | "fail"

OBSERVED_PASS: Observation = "pass"
OBSERVED_FAIL: Observation = "fail"


@dataclass(frozen=True)
class MethodResult:
    """What a verification method observed.

    observed is None when the method's collaborator (e.g. an external schema
    validator) is unavailable; the executor then skips the step.
    """

    method_id: str
    observed: Observation | None
    message: str
    pointers: list[str] = field(default_factory=list)


def passed(method_id: str, message: str) -> MethodResult:
    return MethodResult(method_id=method_id, observed=OBSERVED_PASS, message=message)


def failed(method_id: str, message: str, pointers: list[str] | None = None) -> MethodResult:
    return MethodResult(method_id=method_id, observed=OBSERVED_FAIL, message=message, pointers=list(pointers or []))


def unavailable(method_id: str, message: str) -> MethodResult:
    return MethodResult(method_id=method_id, observed=None, message=message)


def resolve_declared_path(base_dir: Path, rel: str) -> Path:
    """Resolve a manifest-declared path against the build root (no existence check)."""

    return resolve_repo_rel_path(base_dir, rel, must_exist=False, allow_backslashes=False, forbid_symlinks=False)
