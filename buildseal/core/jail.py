from __future__ import annotations

from pathlib import Path


def normalize_repo_rel(rel: str, *, allow_backslashes: bool) -> str:
    """Normalize a repo-relative path to POSIX separators and reject escapes.
    """

    if not isinstance(rel, str) or not rel:
        raise ValueError("path missing/empty")
    if "\x00" in rel:
        raise ValueError("path contains NUL")

    s = str(rel)
    if "\\" in s:
        if not allow_backslashes:
            raise ValueError("path must use '/' separators")
        s = s.replace("\\", "/")

    if "//" in s:
        raise ValueError("path must not contain '//' segments")
    if s.startswith("./"):
        raise ValueError("path must not start with './'")

    if s.startswith("/"):
        raise ValueError("absolute paths are not allowed")
    if len(s) >= 2 and s[1] == ":":
        raise ValueError("drive-qualified paths are not allowed")
    if ":" in s:
        raise ValueError("path must not contain ':'")

    parts = [p for p in s.split("/") if p]
    if not parts:
        raise ValueError("empty path not allowed")
    if any(p in (".", "..") for p in parts):
        raise ValueError("path must not contain '.' or '..' segments")
    return "/".join(parts)


def safe_relpath(repo_root: Path, p: Path) -> str:
    try:
        return p.resolve().relative_to(repo_root.resolve()).as_posix()
    except Exception:
        return p.as_posix()


def _is_symlink_or_has_symlink_parent(p: Path, *, stop_at: Path | None) -> bool:
    try:
        if p.is_symlink():
            return True
    except OSError:
        return True

    stop = stop_at.resolve() if stop_at is not None else None
    for parent in p.parents:
        try:
            if parent.is_symlink():
                return True
        except OSError:
            return True
        if stop is not None and parent.resolve() == stop:
            break
    return False


def resolve_repo_rel_path(
    repo_root: Path,
    rel: str,
    *,
    must_exist: bool,
    must_be_file: bool | None = None,
    allow_backslashes: bool = False,
    forbid_symlinks: bool = True,
) -> Path:
    """Resolve a repo-relative path within repo_root.

    Raises ValueError for paths that escape the root, traverse symlinks (when
    forbidden) or, with must_exist, do not exist.
    """

    rel_posix = normalize_repo_rel(rel, allow_backslashes=allow_backslashes)
    candidate = repo_root / rel_posix

    if forbid_symlinks and _is_symlink_or_has_symlink_parent(candidate, stop_at=repo_root):
        raise ValueError(f"symlink not allowed in scope: {rel_posix}")

    resolved = candidate.resolve()
    try:
        resolved.relative_to(repo_root.resolve())
    except Exception as e:
        raise ValueError(f"scope escape: {rel_posix}") from e

    if must_exist:
        if not resolved.exists():
            raise ValueError(f"missing path in scope: {rel_posix}")
        if must_be_file is True and resolved.is_dir():
            raise ValueError(f"expected file but found directory: {rel_posix}")
        if must_be_file is False and not resolved.is_dir():
            raise ValueError(f"expected directory but found file: {rel_posix}")

    return resolved
