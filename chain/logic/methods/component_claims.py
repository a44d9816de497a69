from __future__ import annotations

from chain.logic.base import MethodResult, failed, passed
from chain.logic.methods.context import VerifyContext

METHOD_ID = "component_claims"


def run(ctx: VerifyContext) -> MethodResult:
    # Checks the declared governance claims are affirmed; they are not
    # re-derived from the sources.
    cv = ctx.manifest.component_validation
    if cv is None:
        return failed(METHOD_ID, "manifest has no component_validation section")
    denied = [name for name, value in cv.claims().items() if not value]
    if denied:
        return failed(METHOD_ID, "component claims not affirmed: " + ", ".join(denied), pointers=denied)
    return passed(METHOD_ID, "all component validation claims are declared true")
