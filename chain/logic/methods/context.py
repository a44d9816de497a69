from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from buildseal.manifest.document import ManifestDocument
from buildseal.manifest.model import Manifest


@dataclass(frozen=True)
class VerifyContext:
    base_dir: Path
    manifest_path: Path | None

    document: ManifestDocument
    manifest: Manifest

    schema_path: Path | None = None
