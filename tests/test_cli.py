"""CLI tests driven through typer's CliRunner with fake collaborators."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from media_butler import cli
from media_butler.deps import DepsReport, ToolInfo
from media_butler.errors import ExitCode
from media_butler.manifest import ManifestStore
from tests.conftest import REMOTE_ENV, FakeRemote, FakeTranscoder, write_media

runner = CliRunner()

NO_REMOTE_ENV = {key: None for key in REMOTE_ENV}


def _ok_report(*args, **kwargs) -> DepsReport:
    return DepsReport(
        ok=True,
        ffmpeg=ToolInfo(path="/usr/bin/ffmpeg", version="7.0", version_raw="ffmpeg version 7.0"),
        encoders={"libx264": True, "aac": True},
    )


def _missing_report(*args, **kwargs) -> DepsReport:
    return DepsReport(
        ok=False,
        ffmpeg=None,
        encoders={"libx264": False, "aac": False},
        errors=[{"code": "deps_missing", "message": "ffmpeg not found in PATH", "hint": None}],
    )


@pytest.fixture
def fakes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    remote = FakeRemote()
    transcoder = FakeTranscoder()
    monkeypatch.setattr(cli, "check_deps", _ok_report)
    monkeypatch.setattr(cli, "build_remote", lambda settings: remote)
    monkeypatch.setattr(cli, "build_transcoder", lambda settings, ffmpeg_bin: transcoder)
    return remote, transcoder


def test_help_lists_commands() -> None:
    result = runner.invoke(cli.app, ["--help"])
    assert result.exit_code == 0
    for command in ("sync", "rotate", "check-deps", "status"):
        assert command in result.output


def test_sync_first_video_of_new_project(tmp_path: Path, fakes) -> None:
    remote, _ = fakes
    inbox = tmp_path / "inbox"
    source = write_media(inbox, "holiday.MOV", size=1024)
    manifest = tmp_path / "manifest.json"

    result = runner.invoke(
        cli.app,
        ["sync", "--project", "demo", "--dir", str(inbox), "--short-code", "DM", "--manifest", str(manifest)],
        env=REMOTE_ENV,
    )

    assert result.exit_code == 0, result.output
    assert "Created project demo with short-code DM" in result.output
    assert "[OK] holiday.MOV: ingested as DM_VID_0001.mp4" in result.output
    assert "Done: 1 processed, 1 ingested, 0 duplicates, 0 skipped, 0 failed" in result.output
    assert not source.exists()
    assert "demo/videos/DM_VID_0001.mp4" in remote.objects

    on_disk = json.loads(manifest.read_text(encoding="utf-8"))
    assert on_disk["projects"]["demo"]["short_code"] == "DM"
    assert on_disk["assets"]["demo"][0]["system_filename"] == "DM_VID_0001.mp4"


def test_sync_prompts_for_short_code(tmp_path: Path, fakes) -> None:
    inbox = tmp_path / "inbox"
    write_media(inbox, "voice.wav", b"voice")

    result = runner.invoke(
        cli.app,
        ["sync", "--project", "podcast", "--dir", str(inbox)],
        input="PC\n",
        env=REMOTE_ENV,
    )

    assert result.exit_code == 0, result.output
    assert "ingested as PC_AUD_0001.m4a" in result.output
    assert ManifestStore(tmp_path / "manifest.json").get_project_config("podcast").short_code == "PC"


def test_sync_reports_partial_failure(tmp_path: Path, fakes) -> None:
    _, transcoder = fakes
    transcoder.fail_names = {"broken.mp4"}
    inbox = tmp_path / "inbox"
    write_media(inbox, "broken.mp4", b"broken")
    write_media(inbox, "fine.mp4", b"fine")

    result = runner.invoke(
        cli.app, ["sync", "-p", "demo", "-d", str(inbox), "--short-code", "DM"], env=REMOTE_ENV
    )

    assert result.exit_code == ExitCode.PARTIAL_FAILED
    assert "[FAIL] broken.mp4" in result.output
    assert (inbox / "broken.mp4").exists()


def test_sync_without_credentials_exits_config_error(tmp_path: Path, fakes) -> None:
    inbox = tmp_path / "inbox"
    write_media(inbox, "a.mp4", b"a")

    result = runner.invoke(cli.app, ["sync", "-p", "demo", "-d", str(inbox)], env=NO_REMOTE_ENV)

    assert result.exit_code == ExitCode.CONFIG_ERROR
    assert "Missing required configuration" in result.output
    assert (inbox / "a.mp4").exists()


def test_sync_without_ffmpeg_exits_deps_missing(tmp_path: Path, fakes, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "check_deps", _missing_report)
    result = runner.invoke(cli.app, ["sync", "-p", "demo", "-d", str(tmp_path)], env=REMOTE_ENV)
    assert result.exit_code == ExitCode.DEPS_MISSING
    assert "ffmpeg not found" in result.output


def test_sync_missing_directory_exits_invalid_params(tmp_path: Path, fakes) -> None:
    result = runner.invoke(cli.app, ["sync", "-p", "demo", "-d", str(tmp_path / "nope")], env=REMOTE_ENV)
    assert result.exit_code == ExitCode.INVALID_PARAMS


def test_sync_corrupt_manifest_exits_manifest_error(tmp_path: Path, fakes) -> None:
    (tmp_path / "manifest.json").write_text("{broken", encoding="utf-8")
    result = runner.invoke(cli.app, ["sync", "-p", "demo", "-d", str(tmp_path)], env=REMOTE_ENV)
    assert result.exit_code == ExitCode.MANIFEST_ERROR


def _seed_old_asset(manifest: Path) -> None:
    store = ManifestStore(manifest)
    store.set_project_config("demo", "DM")
    store.record_asset(
        "demo",
        "video",
        {
            "original_filename": "old.mov",
            "content_hash": "a" * 64,
            "size_bytes": 10,
            "uploaded_at": datetime.now(timezone.utc) - timedelta(days=120),
        },
    )


def test_rotate_rejects_non_numeric_age(tmp_path: Path, fakes) -> None:
    result = runner.invoke(cli.app, ["rotate", "-p", "demo", "--older-than", "abc"], env=REMOTE_ENV)
    assert result.exit_code == ExitCode.INVALID_PARAMS


def test_rotate_dry_run_leaves_everything_in_place(tmp_path: Path, fakes) -> None:
    remote, _ = fakes
    manifest = tmp_path / "manifest.json"
    _seed_old_asset(manifest)
    remote.objects["demo/videos/DM_VID_0001.mp4"] = b"x"
    before = manifest.read_bytes()

    result = runner.invoke(cli.app, ["rotate", "-p", "demo", "--dry-run"], env=REMOTE_ENV)

    assert result.exit_code == 0, result.output
    assert "[DRY RUN] [would delete] demo/videos/DM_VID_0001.mp4" in result.output
    assert "Done: 1 would be archived, 0 failed" in result.output
    assert remote.deleted == []
    assert manifest.read_bytes() == before


def test_rotate_deletes_and_archives(tmp_path: Path, fakes) -> None:
    remote, _ = fakes
    manifest = tmp_path / "manifest.json"
    _seed_old_asset(manifest)
    remote.objects["demo/videos/DM_VID_0001.mp4"] = b"x"

    result = runner.invoke(cli.app, ["rotate", "-p", "demo", "--older-than", "90"], env=REMOTE_ENV)

    assert result.exit_code == 0, result.output
    assert remote.deleted == ["demo/videos/DM_VID_0001.mp4"]
    assert ManifestStore(manifest).list_assets("demo")[0].status == "archived"


def test_status_json(tmp_path: Path, fakes) -> None:
    _seed_old_asset(tmp_path / "manifest.json")

    result = runner.invoke(cli.app, ["status", "-p", "demo", "--json"], env=REMOTE_ENV)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["config"]["short_code"] == "DM"
    assert [rec["system_filename"] for rec in payload["assets"]] == ["DM_VID_0001.mp4"]


def test_check_deps_json_reports_missing_ffmpeg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(
        cli.app, ["check-deps", "--json"], env={"FFMPEG_PATH": str(tmp_path / "no-such-ffmpeg")}
    )
    assert result.exit_code == ExitCode.DEPS_MISSING
    payload = json.loads(result.stdout)
    assert payload["ok"] is False
    assert payload["errors"][0]["code"] == "deps_missing"
