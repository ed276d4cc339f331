"""
playground-sandbox: script subprocess smoke tests

Purpose
- Keep the workspace GC script executable and its `--dry-run` mode non-destructive.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[3]
SRC_PATH = REPO_ROOT / "src"
OLD_MTIME = 1_000_000.0


def _run_script(*args: str) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("PLAYGROUND_")}
    existing_pythonpath = env.get("PYTHONPATH")
    env["PYTHONPATH"] = (
        str(SRC_PATH) if not existing_pythonpath else f"{SRC_PATH}{os.pathsep}{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, *args],
        cwd=REPO_ROOT,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _seed_stale_workspace(root: Path) -> Path:
    stale = root / "playground-out-stale"
    stale.mkdir(parents=True)
    (stale / "compilation.s").write_text("main:", encoding="utf-8")
    os.utime(stale, (OLD_MTIME, OLD_MTIME))
    return stale


def test_gc_workspaces_help_smoke() -> None:
    result = _run_script("scripts/gc_workspaces.py", "--help")

    assert result.returncode == 0, result.stderr
    assert "--max-age-hours" in result.stdout
    assert "--dry-run" in result.stdout


def test_gc_workspaces_dry_run_is_non_destructive(tmp_path: Path) -> None:
    stale = _seed_stale_workspace(tmp_path)

    result = _run_script(
        "scripts/gc_workspaces.py", "--temp-root", str(tmp_path), "--dry-run", "--json"
    )

    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout)
    assert payload["dry_run"] is True
    assert payload["removed_count"] == 0
    assert payload["stale_paths"] == [stale.as_posix()]
    assert stale.exists()


def test_gc_workspaces_removes_only_workspace_entries(tmp_path: Path) -> None:
    stale = _seed_stale_workspace(tmp_path)
    unrelated = tmp_path / "notes.txt"
    unrelated.write_text("keep", encoding="utf-8")
    os.utime(unrelated, (OLD_MTIME, OLD_MTIME))

    result = _run_script("scripts/gc_workspaces.py", "--temp-root", str(tmp_path), "--json")

    assert result.returncode == 0, result.stderr
    assert json.loads(result.stdout)["removed_count"] == 1
    assert not stale.exists()
    assert unrelated.exists()
