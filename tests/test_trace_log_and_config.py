from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

pytestmark = pytest.mark.repo_local

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from buildseal.config import (
    DEFAULT_OUTPUT_DIR,
    ArtifactSpec,
    load_build_config,
    parse_build_config,
    starter_config,
)
from buildseal.core.jail import normalize_repo_rel, resolve_repo_rel_path
from buildseal.core.time import FIXED_TIMESTAMP, parse_iso8601, utc_timestamp_iso
from buildseal.core.trace_log import TraceLog
from buildseal.manifest.model import ArtifactKind


# ---------------------------------------------------------------------------
# Trace log
# ---------------------------------------------------------------------------

class TestTraceLog:
    def test_entries_flush_once_as_json_lines(self, tmp_path: Path) -> None:
        trace = TraceLog(deterministic=True)
        trace.record("generation.project", "template.xml")
        trace.record("verify.chain", "libx", "PASSED")

        path = trace.flush(tmp_path / "out" / "trace.jsonl")
        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(l)["event"] for l in lines] == ["generation.project", "verify.chain"]
        assert json.loads(lines[1]) == {
            "event": "verify.chain",
            "subject": "libx",
            "detail": "PASSED",
            "timestamp": FIXED_TIMESTAMP,
        }
        assert trace.flushed

    def test_no_writes_after_flush(self, tmp_path: Path) -> None:
        trace = TraceLog()
        trace.flush(tmp_path / "trace.jsonl")
        with pytest.raises(RuntimeError):
            trace.record("late", "x")
        with pytest.raises(RuntimeError):
            trace.flush(tmp_path / "trace.jsonl")

    def test_rejects_empty_event_and_bad_timestamp(self) -> None:
        trace = TraceLog()
        with pytest.raises(ValueError):
            trace.record("", "x")
        with pytest.raises(ValueError):
            trace.record("e", "x", timestamp="2026-01-01T00:00:00")
        assert trace.entries == ()


class TestTimestamps:
    def test_deterministic_timestamp(self) -> None:
        assert utc_timestamp_iso(deterministic=True) == "1970-01-01T00:00:00+00:00"

    def test_live_timestamp_has_offset(self) -> None:
        ts = utc_timestamp_iso(deterministic=False)
        assert parse_iso8601(ts).tzinfo is not None

    @pytest.mark.parametrize("ts", ["2026-01-02T03:04:05Z", "2026-01-02T03:04:05.123456789-05:00"])
    def test_accepts_offsets_and_long_fractions(self, ts: str) -> None:
        assert parse_iso8601(ts).tzinfo is not None

    @pytest.mark.parametrize("ts", ["", "2026-01-02", "2026-01-02T03:04:05", "2026-01-02 03:04:05+00:00"])
    def test_rejects_naive_or_malformed(self, ts: str) -> None:
        with pytest.raises(ValueError):
            parse_iso8601(ts)


# ---------------------------------------------------------------------------
# Path jail
# ---------------------------------------------------------------------------

class TestRepoJail:
    @pytest.mark.parametrize("rel", ["/etc/passwd", "../x.c", "a/../../x.c", "C:/x.c", "a\x00b"])
    def test_escapes_rejected(self, rel: str) -> None:
        with pytest.raises(ValueError):
            normalize_repo_rel(rel, allow_backslashes=False)

    def test_resolve_inside_root(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "a.c").write_text("x", encoding="utf-8")
        p = resolve_repo_rel_path(tmp_path, "src/a.c", must_exist=True, must_be_file=True)
        assert p == (tmp_path / "src" / "a.c").resolve()

    def test_missing_required_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            resolve_repo_rel_path(tmp_path, "absent.c", must_exist=True)


# ---------------------------------------------------------------------------
# Build config
# ---------------------------------------------------------------------------

class TestBuildConfig:
    def test_minimal_config_defaults(self) -> None:
        cfg = parse_build_config({"target_name": " libx ", "sources": ["src/a.c"], "artifacts": ["out/libx.a"]})
        assert cfg.target_name == "libx"
        assert cfg.sources == ("src/a.c",)
        assert cfg.artifacts == (ArtifactSpec(path="out/libx.a", kind=ArtifactKind.OTHER),)
        assert cfg.artifacts[0].display_name == "libx.a"
        assert cfg.output_dir == DEFAULT_OUTPUT_DIR
        assert cfg.digest_algorithm == "sha256"
        assert cfg.template is None

    @pytest.mark.parametrize(
        "obj",
        [
            [],
            {},
            {"target_name": ""},
            {"target_name": "x", "bogus": 1},
            {"target_name": "x", "sources": ["a.c", "a.c"]},
            {"target_name": "x", "sources": "a.c"},
            {"target_name": "x", "artifacts": [{"path": "a", "kind": "DYLIB"}]},
            {"target_name": "x", "digest_algorithm": "md5"},
            {"target_name": "x", "max_workers": 0},
            {"target_name": "x", "max_workers": True},
            {"target_name": "x", "output_dir": "/abs"},
        ],
    )
    def test_invalid_configs_fail_closed(self, obj) -> None:
        with pytest.raises(ValueError):
            parse_build_config(obj)

    def test_overrides_are_revalidated(self) -> None:
        cfg = parse_build_config({"target_name": "x"})
        assert cfg.with_overrides(target_name=None) is cfg
        assert cfg.with_overrides(output_dir="dist").output_dir == "dist"
        with pytest.raises(ValueError):
            cfg.with_overrides(output_dir="../dist")

    def test_starter_config_round_trips(self, tmp_path: Path) -> None:
        p = tmp_path / "buildseal.json"
        p.write_text(json.dumps(starter_config(target_name="libdemo")), encoding="utf-8")
        cfg = load_build_config(p)
        assert cfg.target_name == "libdemo"
        assert cfg.template == "manifests/build_manifest.template.xml"

    def test_invalid_json(self, tmp_path: Path) -> None:
        p = tmp_path / "buildseal.json"
        p.write_text("{", encoding="utf-8")
        with pytest.raises(ValueError, match="invalid JSON"):
            load_build_config(p)
