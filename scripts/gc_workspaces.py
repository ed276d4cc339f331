"""
playground-sandbox: stale workspace garbage collection.

Purpose
- Remove source files and output directories left behind by crashed sandbox sessions.
- Suitable for cron: only prefixed direct children of the workspace root are touched.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"


def _ensure_src_path() -> None:
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete stale sandbox workspaces under the configured temp root.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="playground TOML config used to find sandbox.temp_root.",
    )
    parser.add_argument(
        "--temp-root",
        type=Path,
        default=None,
        help="Workspace root to sweep (overrides the config; default: platform temp dir).",
    )
    parser.add_argument(
        "--max-age-hours",
        type=float,
        default=24.0,
        help="Delete entries older than this many hours.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report stale entries without deleting them.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.max_age_hours < 0:
        print("error: --max-age-hours must be >= 0", file=sys.stderr)
        return 2

    _ensure_src_path()
    from playground_sandbox.config import ConfigLoadError, ConfigValidationError, load_config, temp_root_from
    from playground_sandbox.sandbox import sweep_stale_workspaces

    temp_root: Path | None = args.temp_root
    if temp_root is None:
        try:
            temp_root = temp_root_from(load_config(args.config))
        except (ConfigLoadError, ConfigValidationError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2

    entries = sweep_stale_workspaces(
        temp_root,
        max_age_seconds=args.max_age_hours * 3600.0,
        dry_run=args.dry_run,
    )
    removed = [entry.path.as_posix() for entry in entries if entry.removed]
    stale = [entry.path.as_posix() for entry in entries]

    if args.json:
        payload = {
            "temp_root": None if temp_root is None else temp_root.as_posix(),
            "max_age_hours": float(args.max_age_hours),
            "dry_run": bool(args.dry_run),
            "stale_paths": stale,
            "removed_count": len(removed),
        }
        print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
        return 0

    print(f"stale_count: {len(stale)}")
    print(f"removed_count: {len(removed)}")
    for path in stale:
        print(f"  - {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
