from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_DIGEST_ALGORITHM = "sha256"

# All supported algorithms produce 256-bit digests (64 hex chars).
SUPPORTED_ALGORITHMS = ("sha256", "sha3_256", "blake2s")
_HEX_DIGITS = frozenset("0123456789abcdef")


def require_algorithm(algorithm: str) -> str:
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"unsupported digest algorithm: {algorithm!r} (expected one of {list(SUPPORTED_ALGORITHMS)})")
    return algorithm


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def digest_bytes(data: bytes, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> str:
    return hashlib.new(require_algorithm(algorithm), data).hexdigest()


def digest_file(path: Path, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> str:
    """Digest the full contents of a file.

    The whole file is read before hashing so a concurrent writer can never
    produce a digest over a partial read. Raises OSError if the path is
    missing or unreadable.
    """

    require_algorithm(algorithm)
    data = Path(path).read_bytes()
    digest = digest_bytes(data, algorithm)
    logger.debug("digest %s %s=%s (%d bytes)", path, algorithm, digest, len(data))
    return digest


def digest_files(
    paths: Iterable[Path],
    algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    *,
    max_workers: int | None = None,
) -> list[str]:
    """Digest many files, returning digests in the order the paths were given."""

    require_algorithm(algorithm)
    ordered = [Path(p) for p in paths]
    if max_workers is None or max_workers <= 1 or len(ordered) <= 1:
        return [digest_file(p, algorithm) for p in ordered]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        # map() yields in submission order, not completion order.
        return list(pool.map(lambda p: digest_file(p, algorithm), ordered))


def is_hex_digest(s: str, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> bool:
    if algorithm not in SUPPORTED_ALGORITHMS:
        return False
    if not isinstance(s, str) or len(s) != 64:
        return False
    return all(c in _HEX_DIGITS for c in s)
