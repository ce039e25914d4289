#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src = repo_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def main(argv: list[str] | None = None) -> int:
    _ensure_src_on_path()

    from detran_sc_lookup.portal.diagnostics import ExtractionDiagnostics
    from detran_sc_lookup.portal.extract import build_record
    from detran_sc_lookup.portal.snapshot import FrameSnapshot

    p = argparse.ArgumentParser(
        prog="parse_frame_snapshot",
        description=(
            "Parse a saved DetranNet frame snapshot (data/debug/*.snapshot.json) into the canonical record.\n"
            "This is intended for debugging parsing regressions offline (no Playwright, no secrets)."
        ),
    )
    p.add_argument("--file", required=True, help="Path to a *.snapshot.json captured by the portal client")
    p.add_argument("--plate", required=True, help="Plate that was queried (used when the page lacks one)")
    p.add_argument(
        "--as-of",
        default="",
        help="Evaluate the overdue filter as of this date (YYYY-MM-DD). Default: now.",
    )
    p.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")
    args = p.parse_args(argv)

    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")

    now = datetime.fromisoformat(args.as_of) if args.as_of else None
    snapshot = FrameSnapshot.load(path)
    diagnostics = ExtractionDiagnostics(plate=args.plate)
    record = build_record(args.plate, snapshot, now=now, diagnostics=diagnostics)

    payload = {"record": record.to_response(), "diagnostics": list(diagnostics.messages)}
    out_json = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.out:
        Path(args.out).write_text(out_json, encoding="utf-8")
    else:
        print(out_json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
