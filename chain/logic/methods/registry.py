from __future__ import annotations

from types import ModuleType

from . import (
    artifact_existence,
    component_claims,
    content_checksum,
    schema_validation,
    structural_validation,
)


def get_methods() -> dict[str, ModuleType]:
    # Stable, canonical order.
    modules = [
        content_checksum,
        structural_validation,
        artifact_existence,
        schema_validation,
        component_claims,
    ]
    return {m.METHOD_ID: m for m in modules}
