"""Lowest-level buildseal core utilities.

Dependency direction rules:
- buildseal.core must not import buildseal.manifest, chain.* or the CLI
"""

from buildseal.core.errors import (
	ArtifactNotBuiltError,
	BuildSealError,
	GenerationError,
	InvalidChainError,
	ManifestParseError,
	MissingSectionError,
	MissingTemplateError,
)
from buildseal.core.hash import (
	DEFAULT_DIGEST_ALGORITHM,
	digest_bytes,
	digest_file,
	digest_files,
	is_hex_digest,
	sha256_bytes,
)
from buildseal.core.jail import normalize_repo_rel, resolve_repo_rel_path, safe_relpath
from buildseal.core.json_canon import canonical_json_bytes, pretty_json_bytes
from buildseal.core.time import FIXED_TIMESTAMP, parse_iso8601, utc_timestamp_iso
from buildseal.core.trace_log import TraceEntry, TraceLog

__all__ = [
	"ArtifactNotBuiltError",
	"BuildSealError",
	"DEFAULT_DIGEST_ALGORITHM",
	"FIXED_TIMESTAMP",
	"GenerationError",
	"InvalidChainError",
	"ManifestParseError",
	"MissingSectionError",
	"MissingTemplateError",
	"TraceEntry",
	"TraceLog",
	"canonical_json_bytes",
	"digest_bytes",
	"digest_file",
	"digest_files",
	"is_hex_digest",
	"normalize_repo_rel",
	"parse_iso8601",
	"pretty_json_bytes",
	"resolve_repo_rel_path",
	"safe_relpath",
	"sha256_bytes",
	"utc_timestamp_iso",
]
