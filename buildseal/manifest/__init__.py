"""Manifest document model, typed view and (de)serialization.

Dependency direction rules:
- buildseal.manifest may import buildseal.core, never chain.*
"""

from buildseal.manifest.document import SECTION_ORDER, ManifestDocument
from buildseal.manifest.loader import load, load_path, serialize, write_document
from buildseal.manifest.model import (
	ArtifactKind,
	BuildArtifact,
	ExpectedResult,
	Manifest,
	SourceFile,
	ValidationLevel,
	VerificationStep,
	manifest_from_document,
)
from buildseal.manifest.structure import SchemaError, validate_structure

__all__ = [
	"ArtifactKind",
	"BuildArtifact",
	"ExpectedResult",
	"Manifest",
	"ManifestDocument",
	"SECTION_ORDER",
	"SchemaError",
	"SourceFile",
	"ValidationLevel",
	"VerificationStep",
	"load",
	"load_path",
	"manifest_from_document",
	"serialize",
	"validate_structure",
	"write_document",
]
