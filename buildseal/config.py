"""Build configuration (buildseal.json) loading.

Every field is validated fail-closed: anything malformed raises ValueError
before a build session starts.
"""

from __future__ import annotations

import importlib.resources
import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from buildseal.core.hash import DEFAULT_DIGEST_ALGORITHM, require_algorithm
from buildseal.core.jail import normalize_repo_rel
from buildseal.manifest.model import ArtifactKind

CONFIG_FILENAME = "buildseal.json"
DEFAULT_OUTPUT_DIR = "build/manifests"
BUILTIN_TEMPLATE = "templates/build_manifest.template.xml"

_KNOWN_KEYS = {
    "target_name",
    "sources",
    "artifacts",
    "template",
    "output_dir",
    "digest_algorithm",
    "schema",
    "max_workers",
}


@dataclass(frozen=True)
class ArtifactSpec:
    path: str
    kind: ArtifactKind
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class BuildConfig:
    target_name: str
    sources: tuple[str, ...]
    artifacts: tuple[ArtifactSpec, ...]
    template: str | None = None  # None: builtin template
    output_dir: str = DEFAULT_OUTPUT_DIR
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    schema: str | None = None
    max_workers: int | None = None

    def with_overrides(self, **overrides: Any) -> "BuildConfig":
        present = {k: v for k, v in overrides.items() if v is not None}
        if not present:
            return self
        return _validated(replace(self, **present))


def read_builtin_template_bytes() -> bytes:
    return importlib.resources.files("buildseal").joinpath(BUILTIN_TEMPLATE).read_bytes()


def _require_str(obj: dict[str, Any], key: str, *, required: bool) -> str | None:
    value = obj.get(key)
    if value is None:
        if required:
            raise ValueError(f"config.{key} missing")
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"config.{key} must be a non-empty string")
    return value.strip()


def _parse_artifact(raw: Any, *, index: int) -> ArtifactSpec:
    where = f"config.artifacts[{index}]"
    if isinstance(raw, str):
        return ArtifactSpec(path=raw, kind=ArtifactKind.OTHER)
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be a string or an object")
    path = raw.get("path")
    if not isinstance(path, str) or not path:
        raise ValueError(f"{where}.path missing/invalid")
    kind_raw = raw.get("kind", ArtifactKind.OTHER.value)
    try:
        kind = ArtifactKind(kind_raw)
    except ValueError:
        raise ValueError(f"{where}.kind must be one of {[k.value for k in ArtifactKind]}, got {kind_raw!r}") from None
    name = raw.get("name")
    if name is not None and (not isinstance(name, str) or not name.strip()):
        raise ValueError(f"{where}.name must be a non-empty string")
    return ArtifactSpec(path=path, kind=kind, name=name)


def _validated(cfg: BuildConfig) -> BuildConfig:
    if not isinstance(cfg.target_name, str) or not cfg.target_name.strip():
        raise ValueError("config.target_name must be a non-empty string")
    sources = tuple(normalize_repo_rel(s, allow_backslashes=False) for s in cfg.sources)
    if len(set(sources)) != len(sources):
        raise ValueError("config.sources contains duplicates")
    artifacts = tuple(
        replace(a, path=normalize_repo_rel(a.path, allow_backslashes=False)) for a in cfg.artifacts
    )
    if len({a.path for a in artifacts}) != len(artifacts):
        raise ValueError("config.artifacts contains duplicate paths")
    if cfg.template is not None:
        normalize_repo_rel(cfg.template, allow_backslashes=False)
    if cfg.schema is not None:
        normalize_repo_rel(cfg.schema, allow_backslashes=False)
    normalize_repo_rel(cfg.output_dir, allow_backslashes=False)
    require_algorithm(cfg.digest_algorithm)
    if cfg.max_workers is not None:
        if isinstance(cfg.max_workers, bool) or not isinstance(cfg.max_workers, int) or cfg.max_workers < 1:
            raise ValueError("config.max_workers must be a positive integer")
    return replace(cfg, target_name=cfg.target_name.strip(), sources=sources, artifacts=artifacts)


def parse_build_config(obj: Any) -> BuildConfig:
    if not isinstance(obj, dict):
        raise ValueError("build config must be a JSON object")
    unknown = sorted(set(obj.keys()) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"unknown config keys: {unknown}")

    sources_raw = obj.get("sources", [])
    if not isinstance(sources_raw, list) or not all(isinstance(s, str) for s in sources_raw):
        raise ValueError("config.sources must be a list of strings")
    artifacts_raw = obj.get("artifacts", [])
    if not isinstance(artifacts_raw, list):
        raise ValueError("config.artifacts must be a list")

    cfg = BuildConfig(
        target_name=_require_str(obj, "target_name", required=True) or "",
        sources=tuple(sources_raw),
        artifacts=tuple(_parse_artifact(a, index=i) for i, a in enumerate(artifacts_raw)),
        template=_require_str(obj, "template", required=False),
        output_dir=_require_str(obj, "output_dir", required=False) or DEFAULT_OUTPUT_DIR,
        digest_algorithm=_require_str(obj, "digest_algorithm", required=False) or DEFAULT_DIGEST_ALGORITHM,
        schema=_require_str(obj, "schema", required=False),
        max_workers=obj.get("max_workers"),
    )
    return _validated(cfg)


def load_build_config(path: Path) -> BuildConfig:
    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8", errors="strict"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path}: invalid JSON: {e}") from e
    return parse_build_config(obj)


def starter_config(*, target_name: str) -> dict[str, Any]:
    return {
        "target_name": target_name,
        "sources": [],
        "artifacts": [],
        "template": "manifests/build_manifest.template.xml",
        "output_dir": DEFAULT_OUTPUT_DIR,
        "digest_algorithm": DEFAULT_DIGEST_ALGORITHM,
    }
