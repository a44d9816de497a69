from __future__ import annotations

from lxml import etree

from chain.logic.base import MethodResult, failed, passed, unavailable
from chain.logic.methods.context import VerifyContext

METHOD_ID = "schema_validation"


def run(ctx: VerifyContext) -> MethodResult:
    if ctx.schema_path is None:
        return unavailable(METHOD_ID, "no external XML schema configured")

    try:
        schema = etree.XMLSchema(etree.parse(str(ctx.schema_path)))
    except (OSError, etree.XMLSyntaxError, etree.XMLSchemaParseError) as e:
        return failed(METHOD_ID, f"cannot load XML schema {ctx.schema_path}: {e}")

    if schema.validate(ctx.document.root):
        return passed(METHOD_ID, f"manifest validates against {ctx.schema_path.name}")

    last = schema.error_log.last_error
    detail = f"line {last.line}: {last.message}" if last is not None else "unknown error"
    return failed(METHOD_ID, f"manifest does not validate against {ctx.schema_path.name}: {detail}")
