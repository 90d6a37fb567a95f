from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..alerts import formatters
from ..config import POLICIES, MonitorSettings, load_config
from ..logging_setup import setup_logging
from ..models import SignalEvent
from ..pipeline import FeedPipeline


def load_frames(path: Path) -> List[Dict[str, Any]]:
    """Read a capture file: one JSON object per line with `ts` (ms), `feed` and `frame`."""
    records: List[Dict[str, Any]] = []
    with path.open(encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                rec = json.loads(line)
                ts = int(rec["ts"])
                feed = str(rec["feed"])
            except (ValueError, KeyError, TypeError) as e:
                raise ValueError(f"{path}:{lineno}: invalid capture record ({e})") from e
            if feed not in ("fair", "book"):
                raise ValueError(f"{path}:{lineno}: unknown feed {feed!r}")
            records.append({"ts": ts, "feed": feed, "frame": rec.get("frame")})
    records.sort(key=lambda r: r["ts"])
    return records


def replay_frames(settings: MonitorSettings, records: Iterable[Dict[str, Any]]) -> List[SignalEvent]:
    """Feed recorded frames through the live pipeline with a clock pinned to each record's ts."""
    now = [0]
    events: List[SignalEvent] = []
    pipe = FeedPipeline(settings, on_event=events.append, clock=lambda: now[0])
    for rec in records:
        now[0] = rec["ts"]
        if rec["feed"] == "fair":
            pipe.on_fair_frame(rec["frame"])
        else:
            pipe.on_book_frame(rec["frame"])
    return events


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Replay captured feed frames through the spread signal machine")
    ap.add_argument("--config", required=True, help="Path to YAML config")
    ap.add_argument("--frames", required=True, help="JSONL capture ({\"ts\": ms, \"feed\": fair|book, \"frame\": ...} per line)")
    ap.add_argument("--alerts", action="store_true", help="Print formatted alert text instead of one line per event")
    ap.add_argument("--json", action="store_true", help="Print events as JSON lines")
    ap.add_argument("--policy", choices=POLICIES, help="Override signal.policy from the config")
    args = ap.parse_args(argv)

    overrides = {"signal": {"policy": args.policy}} if args.policy else None
    cfg = load_config(args.config, overrides=overrides)
    setup_logging((cfg.get("logging", {}) or {}).get("level", "WARNING"))
    settings = MonitorSettings.from_dict(cfg)
    events = replay_frames(settings, load_frames(Path(args.frames)))

    for ev in events:
        if args.json:
            print(json.dumps(asdict(ev), sort_keys=True))
        elif args.alerts:
            print(formatters.format_event(settings.telegram.branding, ev))
            print()
        else:
            print(f"{ev.ts_ms} {ev.kind:<5} {ev.symbol:<14} {ev.direction:<5} spread={ev.spread:+.3f}%")
    entries = sum(1 for ev in events if ev.kind == "ENTRY")
    if not args.json:
        print(f"events={len(events)} entries={entries} exits={len(events) - entries}")


if __name__ == "__main__":
    main()
