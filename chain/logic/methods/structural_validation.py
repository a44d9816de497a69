from __future__ import annotations

from buildseal.manifest.structure import first_error_message, validate_structure
from chain.logic.base import MethodResult, failed, passed
from chain.logic.methods.context import VerifyContext

METHOD_ID = "structural_validation"


def run(ctx: VerifyContext) -> MethodResult:
    errors = validate_structure(ctx.document, require_build_sections=True)
    if errors:
        return failed(
            METHOD_ID,
            f"{len(errors)} structural error(s); first at {first_error_message(errors)}",
            pointers=[e.path for e in errors],
        )
    return passed(METHOD_ID, "manifest structure is well-formed")
