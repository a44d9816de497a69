#!/usr/bin/env python3
"""buildseal CLI: build manifest generation, verification and certification.

This is the installable CLI entrypoint (console_scripts).

Subcommands:
- buildseal init                → Write the builtin template and a starter buildseal.json
- buildseal generate            → Compose and persist project/updated/build manifests
- buildseal validate            → Run a manifest's verification chain
- buildseal build               → Full session: generate, validate, emit certificate
- buildseal certificate check   → Re-digest the documents indexed by a certificate
- buildseal about               → Print package identity info

Exit codes:
- 0: success / chain PASSED
- 1: check failed (chain FAILED, certificate mismatch)
- 3: usage/internal error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from buildseal.config import (
    BUILTIN_TEMPLATE,
    CONFIG_FILENAME,
    DEFAULT_OUTPUT_DIR,
    BuildConfig,
    load_build_config,
    read_builtin_template_bytes,
    starter_config,
)
from buildseal.core.errors import BuildSealError, GenerationError
from buildseal.core.jail import resolve_repo_rel_path, safe_relpath
from buildseal.core.time import parse_iso8601


ABOUT_DESCRIPTION = "Cryptographically-anchored build manifests with dependency-gated verification."


def _repo_root(args: argparse.Namespace) -> Path:
    repo_root = Path(str(args.repo)).resolve()
    if not repo_root.exists() or not repo_root.is_dir():
        raise ValueError(f"invalid repo root: {repo_root}")
    return repo_root


def _resolve(repo_root: Path, rel: str, *, must_exist: bool) -> Path:
    return resolve_repo_rel_path(repo_root, rel, must_exist=must_exist, must_be_file=True if must_exist else None)


def _load_config(repo_root: Path, args: argparse.Namespace) -> BuildConfig:
    config_path = _resolve(repo_root, str(args.config), must_exist=True)
    cfg = load_build_config(config_path)
    return cfg.with_overrides(
        target_name=getattr(args, "target", None),
        output_dir=getattr(args, "out", None),
        template=getattr(args, "template", None),
        schema=getattr(args, "schema", None),
    )


def _build_timestamp(args: argparse.Namespace) -> str | None:
    ts = getattr(args, "build_timestamp", None)
    if ts is not None:
        parse_iso8601(ts)
    return ts


def _report_fatal(cmd: str, e: BaseException) -> int:
    if isinstance(e, GenerationError):
        print(f"[buildseal {cmd}] ERROR: {e.generation} generation: {e.cause}", file=sys.stderr)
    else:
        print(f"[buildseal {cmd}] ERROR: {e}", file=sys.stderr)
    return 3


# ---------------------------------------------------------------------------
# about
# ---------------------------------------------------------------------------

def cmd_about(_: argparse.Namespace) -> int:
    try:
        pkg_version = version("buildseal")
    except PackageNotFoundError:
        pkg_version = "0.0.0 (not installed)"
    print(f"buildseal {pkg_version}")
    print(ABOUT_DESCRIPTION)
    return 0


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

def _write_bytes_if_missing(path: Path, data: bytes) -> bool:
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("xb") as f:
        f.write(data)
    return True


def cmd_init(args: argparse.Namespace) -> int:
    try:
        repo_root = _repo_root(args)
        cfg_obj = starter_config(target_name=str(args.target))
        template_path = _resolve(repo_root, cfg_obj["template"], must_exist=False)
        config_path = _resolve(repo_root, CONFIG_FILENAME, must_exist=False)

        wrote_template = _write_bytes_if_missing(template_path, read_builtin_template_bytes())
        cfg_data = (json.dumps(cfg_obj, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")
        wrote_config = _write_bytes_if_missing(config_path, cfg_data)

        for path, wrote in ((template_path, wrote_template), (config_path, wrote_config)):
            state = "created" if wrote else "exists, left unchanged"
            print(f"[buildseal init] {safe_relpath(repo_root, path)}: {state}", file=sys.stderr)
        return 0
    except Exception as e:
        return _report_fatal("init", e)


# ---------------------------------------------------------------------------
# generate / build
# ---------------------------------------------------------------------------

def cmd_generate(args: argparse.Namespace) -> int:
    from chain.build_session import BuildSession

    try:
        repo_root = _repo_root(args)
        session = BuildSession(
            repo_root=repo_root,
            config=_load_config(repo_root, args),
            deterministic=bool(args.deterministic),
            build_timestamp=_build_timestamp(args),
        )
        written = session.generate()
        for name, path in written.items():
            print(f"[buildseal generate] {name}: {safe_relpath(repo_root, path)}", file=sys.stderr)
        return 0
    except Exception as e:
        return _report_fatal("generate", e)


def cmd_build(args: argparse.Namespace) -> int:
    from chain.build_session import BuildSession
    from chain.verify_chain import format_outcomes

    try:
        repo_root = _repo_root(args)
        session = BuildSession(
            repo_root=repo_root,
            config=_load_config(repo_root, args),
            deterministic=bool(args.deterministic),
            build_timestamp=_build_timestamp(args),
        )
        result = session.run()
    except Exception as e:
        return _report_fatal("build", e)

    for line in format_outcomes(result.chain):
        print(line)
    print(f"[buildseal build] manifests: {safe_relpath(repo_root, result.build_dir)}", file=sys.stderr)
    print(f"[buildseal build] certificate: {safe_relpath(repo_root, result.certificate_path)}", file=sys.stderr)
    return result.exit_code


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

def cmd_validate(args: argparse.Namespace) -> int:
    from chain.verify_chain import format_outcomes, verify_manifest

    try:
        repo_root = _repo_root(args)
        manifest_path = _resolve(repo_root, str(args.manifest), must_exist=True)
        schema_path = _resolve(repo_root, str(args.schema), must_exist=True) if args.schema else None
        result = verify_manifest(manifest_path, base_dir=repo_root, schema_path=schema_path)
    except (BuildSealError, OSError, ValueError) as e:
        return _report_fatal("validate", e)

    for line in format_outcomes(result):
        print(line)
    return 0 if result.passed else 1


# ---------------------------------------------------------------------------
# certificate check
# ---------------------------------------------------------------------------

def cmd_certificate_check(args: argparse.Namespace) -> int:
    from chain.certify import check_certificate, latest_certificate

    try:
        repo_root = _repo_root(args)
        if args.certificate:
            cert_path = _resolve(repo_root, str(args.certificate), must_exist=True)
        else:
            out_dir = _resolve(repo_root, str(args.out), must_exist=False)
            latest = latest_certificate(out_dir)
            if latest is None:
                raise ValueError(f"no certificate found in {safe_relpath(repo_root, out_dir)}")
            cert_path = latest
        problems = check_certificate(cert_path)
    except Exception as e:
        return _report_fatal("certificate check", e)

    rel = safe_relpath(repo_root, cert_path)
    if problems:
        for p in problems:
            print(f"[buildseal certificate check] MISMATCH {p}", file=sys.stderr)
        print(f"[buildseal certificate check] {rel}: TAMPERED ({len(problems)} document(s))", file=sys.stderr)
        return 1
    print(f"[buildseal certificate check] {rel}: intact", file=sys.stderr)
    return 0


def _add_session_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--repo", default=".", help="Build root (default: .)")
    p.add_argument("--config", default=CONFIG_FILENAME, help=f"Repo-relative build config (default: {CONFIG_FILENAME})")
    p.add_argument("--target", default=None, help="Override config target_name")
    p.add_argument("--out", default=None, help="Override config output_dir (repo-relative)")
    p.add_argument("--template", default=None, help="Override config template (repo-relative)")
    p.add_argument("--schema", default=None, help="Override config schema XSD (repo-relative)")
    p.add_argument("--build-timestamp", default=None, help="ISO-8601 build timestamp with offset")
    p.add_argument("--deterministic", action="store_true", help="Use fixed timestamps for deterministic output")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="buildseal",
        description="buildseal CLI: build manifest generation, verification and certification",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command", help="Subcommand")

    # about
    subparsers.add_parser("about", help="Print package identity info")

    # init
    p_init = subparsers.add_parser("init", help=f"Write {BUILTIN_TEMPLATE} copy and a starter {CONFIG_FILENAME}")
    p_init.add_argument("--repo", default=".", help="Repo root (default: .)")
    p_init.add_argument("--target", default="placeholder", help="target_name for the starter config")

    # generate
    p_generate = subparsers.add_parser("generate", help="Compose and persist the manifest generations")
    _add_session_args(p_generate)

    # build
    p_build = subparsers.add_parser("build", help="Generate, verify and certify a build")
    _add_session_args(p_build)

    # validate
    p_validate = subparsers.add_parser("validate", help="Run the verification chain of a manifest")
    p_validate.add_argument("--repo", default=".", help="Build root (default: .)")
    p_validate.add_argument("--manifest", required=True, help="Repo-relative path to the manifest")
    p_validate.add_argument("--schema", default=None, help="Repo-relative XSD for schema_validation steps")

    # certificate (subparser group)
    p_cert = subparsers.add_parser("certificate", help="Certificate commands")
    cert_subs = p_cert.add_subparsers(dest="certificate_command", help="Certificate subcommand")

    # certificate check
    p_cert_check = cert_subs.add_parser("check", help="Verify a certificate's document digests")
    p_cert_check.add_argument("--repo", default=".", help="Repo root (default: .)")
    p_cert_check.add_argument("--certificate", default=None, help="Repo-relative certificate path")
    p_cert_check.add_argument(
        "--out",
        default=DEFAULT_OUTPUT_DIR,
        help="Directory searched for the latest certificate when --certificate is omitted",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[buildseal] %(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
    )

    if args.command == "about":
        return cmd_about(args)
    elif args.command == "init":
        return cmd_init(args)
    elif args.command == "generate":
        return cmd_generate(args)
    elif args.command == "build":
        return cmd_build(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "certificate":
        if args.certificate_command == "check":
            return cmd_certificate_check(args)
        p_cert.print_help()
        return 3
    else:
        parser.print_help()
        return 3


if __name__ == "__main__":
    sys.exit(main())
