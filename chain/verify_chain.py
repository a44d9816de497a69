#!/usr/bin/env python3
"""Verification chain executor: run a manifest's declared verification steps.

Steps run in dependency order. A step whose dependency did not pass is
SKIPPED; a step runs its registered method and ends PASSED when the observed
result equals its expected_result, FAILED otherwise. The chain is PASSED only
if every step PASSED.

Chain configuration problems (duplicate names, unknown methods, dangling or
cyclic dependencies) raise InvalidChainError before any step runs.

Exit codes (when run as a script):
- 0: PASSED
- 2: FAILED
- 3: tool usage/internal errors
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import ModuleType

from buildseal.core.errors import BuildSealError, InvalidChainError
from buildseal.manifest.loader import load_path
from buildseal.manifest.model import VerificationStep, manifest_from_document
from chain.logic.methods.context import VerifyContext
from chain.logic.methods.registry import get_methods

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class StepOutcome:
    name: str
    method: str
    expected_result: str
    observed: str | None
    state: StepState
    message: str
    depends_on: str | None = None
    pointers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChainResult:
    status: StepState  # PASSED | FAILED
    outcomes: tuple[StepOutcome, ...]

    @property
    def passed(self) -> bool:
        return self.status is StepState.PASSED

    def outcome(self, name: str) -> StepOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(name)

    def states(self) -> dict[str, StepState]:
        return {o.name: o.state for o in self.outcomes}


def plan_chain(steps: tuple[VerificationStep, ...] | list[VerificationStep], *, methods: dict[str, ModuleType]) -> list[VerificationStep]:
    """Validate the chain and return its steps in a stable topological order.

    Kahn's algorithm; among ready steps the one declared first goes first.
    """

    steps = list(steps)
    if not steps:
        raise InvalidChainError("verification chain declares no steps")

    by_name: dict[str, VerificationStep] = {}
    for s in steps:
        if s.name in by_name:
            raise InvalidChainError(f"duplicate verification step name: {s.name!r}")
        by_name[s.name] = s

    for s in steps:
        if s.method not in methods:
            raise InvalidChainError(
                f"step {s.name!r} uses unknown verification method {s.method!r} (known: {sorted(methods)})"
            )
        if s.depends_on is not None:
            if s.depends_on == s.name:
                raise InvalidChainError(f"step {s.name!r} depends on itself")
            if s.depends_on not in by_name:
                raise InvalidChainError(f"step {s.name!r} depends on unknown step {s.depends_on!r}")

    declared_index = {s.name: i for i, s in enumerate(steps)}
    dependents: dict[str, list[str]] = {s.name: [] for s in steps}
    pending_deps: dict[str, int] = {}
    for s in steps:
        pending_deps[s.name] = 1 if s.depends_on is not None else 0
        if s.depends_on is not None:
            dependents[s.depends_on].append(s.name)

    ready = sorted((n for n, c in pending_deps.items() if c == 0), key=declared_index.__getitem__)
    order: list[VerificationStep] = []
    while ready:
        name = ready.pop(0)
        order.append(by_name[name])
        for child in dependents[name]:
            pending_deps[child] -= 1
            if pending_deps[child] == 0:
                ready.append(child)
        ready.sort(key=declared_index.__getitem__)

    if len(order) != len(steps):
        cyclic = sorted((n for n, c in pending_deps.items() if c > 0), key=declared_index.__getitem__)
        raise InvalidChainError(f"cyclic verification step dependencies: {cyclic}")
    return order


def execute_chain(
    steps: tuple[VerificationStep, ...] | list[VerificationStep],
    ctx: VerifyContext,
    *,
    methods: dict[str, ModuleType] | None = None,
) -> ChainResult:
    methods = get_methods() if methods is None else methods
    order = plan_chain(steps, methods=methods)

    states: dict[str, StepState] = {s.name: StepState.PENDING for s in order}
    outcomes: dict[str, StepOutcome] = {}

    for step in order:
        expected = step.expected_result.value
        if step.depends_on is not None and states[step.depends_on] is not StepState.PASSED:
            states[step.name] = StepState.SKIPPED
            outcomes[step.name] = StepOutcome(
                name=step.name,
                method=step.method,
                expected_result=expected,
                observed=None,
                state=StepState.SKIPPED,
                message=f"dependency {step.depends_on!r} is {states[step.depends_on].value}",
                depends_on=step.depends_on,
            )
            logger.warning("step %s SKIPPED: dependency %s did not pass", step.name, step.depends_on)
            continue

        states[step.name] = StepState.RUNNING
        logger.debug("step %s RUNNING (%s)", step.name, step.method)
        try:
            result = methods[step.method].run(ctx)
            observed, message = result.observed, result.message
            pointers = tuple(result.pointers)
        except Exception as e:
            # A crashing method is a failed step, not a crashed chain.
            logger.exception("step %s: method %s raised", step.name, step.method)
            observed, message = None, f"method {step.method} raised {type(e).__name__}: {e}"
            pointers = ()
            state = StepState.FAILED
        else:
            if observed is None:
                state = StepState.SKIPPED
            elif observed == expected:
                state = StepState.PASSED
            else:
                state = StepState.FAILED

        states[step.name] = state
        outcomes[step.name] = StepOutcome(
            name=step.name,
            method=step.method,
            expected_result=expected,
            observed=observed,
            state=state,
            message=message,
            depends_on=step.depends_on,
            pointers=pointers,
        )
        logger.info("step %s %s: %s", step.name, state.value, message)

    ordered = tuple(outcomes[s.name] for s in order)
    status = StepState.PASSED if all(o.state is StepState.PASSED for o in ordered) else StepState.FAILED
    return ChainResult(status=status, outcomes=ordered)


def verify_manifest(manifest_path: Path, *, base_dir: Path, schema_path: Path | None = None) -> ChainResult:
    """Load a persisted manifest and run its verification chain.

    Raises ManifestParseError / OSError if the manifest cannot be loaded and
    InvalidChainError if its chain is misconfigured.
    """

    document = load_path(manifest_path)
    manifest = manifest_from_document(document)
    steps = manifest.crypto.steps if manifest.crypto is not None else ()
    ctx = VerifyContext(
        base_dir=base_dir,
        manifest_path=manifest_path,
        document=document,
        manifest=manifest,
        schema_path=schema_path,
    )
    return execute_chain(steps, ctx)


def format_outcomes(result: ChainResult) -> list[str]:
    lines = [f"{o.state.value:<8} {o.name} [{o.method}] {o.message}" for o in result.outcomes]
    lines.append(f"chain: {result.status.value}")
    return lines


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    ap = argparse.ArgumentParser()
    ap.add_argument("--manifest", required=True, help="Path to the persisted build manifest")
    ap.add_argument("--base-dir", default=".", help="Build root that declared source/artifact paths are relative to")
    ap.add_argument("--schema", default=None, help="Optional XSD used by schema_validation steps")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    try:
        args = _parse_args(argv)
        schema = Path(args.schema).resolve() if args.schema else None
        result = verify_manifest(Path(args.manifest), base_dir=Path(args.base_dir).resolve(), schema_path=schema)
        for line in format_outcomes(result):
            print(line)
        return 0 if result.passed else 2
    except SystemExit as e:
        return int(e.code) if isinstance(e.code, int) else 3
    except (BuildSealError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
