from __future__ import annotations

import zipfile
from pathlib import Path

from github_screenshot_mailer.util.debug_bundle import create_debug_bundle, save_debug_artifacts

from fakes import PNG_BYTES, BrokenSession, FakeSession


def test_create_debug_bundle_includes_debug_and_log(tmp_path: Path) -> None:
    debug_dir = tmp_path / "debug"
    debug_dir.mkdir()
    (debug_dir / "login_timeout_1.png").write_bytes(b"png")
    (debug_dir / "login_timeout_1.html").write_text("<html/>", encoding="utf-8")

    log_file = tmp_path / "screenshot_mailer.log"
    log_file.write_text("hello", encoding="utf-8")

    out = create_debug_bundle(
        debug_dir=str(debug_dir),
        log_file=str(log_file),
        out_dir=str(tmp_path),
        label="LoginTimeoutError",
    )
    assert out.exists()
    assert out.suffix == ".zip"
    assert out.name.startswith("debug_bundle_logintimeouterror_")

    with zipfile.ZipFile(out, "r") as z:
        names = set(z.namelist())
        assert "screenshot_mailer.log" in names
        assert "debug/login_timeout_1.png" in names
        assert "debug/login_timeout_1.html" in names


def test_bundle_tolerates_missing_inputs(tmp_path: Path) -> None:
    out = create_debug_bundle(debug_dir=str(tmp_path / "nope"), log_file=str(tmp_path / "nope.log"), out_dir=str(tmp_path))
    with zipfile.ZipFile(out, "r") as z:
        assert z.namelist() == []


def test_save_debug_artifacts_writes_screen_and_html(tmp_path: Path) -> None:
    s = FakeSession(page_source="<html>login</html>")
    save_debug_artifacts(s, debug_dir=str(tmp_path / "debug"), name_prefix="login failure!")

    files = sorted((tmp_path / "debug").iterdir())
    assert [f.suffix for f in files] == [".html", ".png"]
    assert files[0].name.startswith("login_failure_")
    assert files[0].read_text(encoding="utf-8") == "<html>login</html>"
    assert files[1].read_bytes() == PNG_BYTES


def test_save_debug_artifacts_is_best_effort(tmp_path: Path) -> None:
    s = BrokenSession()
    s.screenshot_error = RuntimeError("target closed")
    save_debug_artifacts(s, debug_dir=str(tmp_path), name_prefix="x")
    assert list(tmp_path.iterdir()) == []


def test_blank_debug_dir_does_not_bundle_working_directory(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("GITHUB_LOGIN_PASSWORD=supersecret\n", encoding="utf-8")
    (tmp_path / "config.yaml").write_text("smtp: {}\n", encoding="utf-8")

    out = create_debug_bundle(debug_dir="", log_file="", out_dir=str(tmp_path / "bundles"))

    with zipfile.ZipFile(out, "r") as z:
        assert z.namelist() == []
