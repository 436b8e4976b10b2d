from __future__ import annotations

import argparse
import json
import signal
import sys

import requests

from lbsync import db
from lbsync.logs import setup_logging
from lbsync.pipeline import build_pipeline
from lbsync.render import render
from lbsync.settings import ConfigError, Settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _run(cfg: Settings) -> int:
    """Headless mode: consume from the queue in the foreground until SIGINT/SIGTERM."""
    db.init_db()
    pipeline = build_pipeline(cfg)
    consumer = pipeline.consumer
    if consumer is None:
        raise RuntimeError("Pipeline was built without a queue consumer.")

    def _shutdown(signum, frame) -> None:
        db.log_event("INFO", f"Received signal {signum}, stopping after current batch")
        consumer.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)
    consumer.run()
    return 0


def _render(cfg: Settings) -> int:
    """Dry run: query the inventory and print the config that would be written."""
    pipeline = build_pipeline(cfg, with_consumer=False)
    r = pipeline.reconciler
    backends = r.inventory.backends(r.spec)
    sys.stdout.write(render(backends, r.template))
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="HAProxy backend sync")
    p.add_argument("--api", default="http://localhost:8000", help="Control-plane API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Consume the queue in the foreground (no API)")
    sub.add_parser("render", help="Print the config for the current inventory without writing it")
    sub.add_parser("status", help="Show consumer status and the last pass")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_pa = sub.add_parser("passes", help="Show recent reconciliation passes")
    s_pa.add_argument("--limit", type=int, default=20)

    sub.add_parser("reconcile", help="Force one reconciliation pass via the API")

    args = p.parse_args(argv)

    if args.cmd in {"run", "render"}:
        setup_logging()
        try:
            cfg = Settings.from_env().validate()
        except ConfigError as e:
            print(f"configuration error: {e}", file=sys.stderr)
            return 2
        return _run(cfg) if args.cmd == "run" else _render(cfg)

    base = args.api.rstrip("/")

    if args.cmd == "status":
        _print(requests.get(f"{base}/status", timeout=10).json())
        return 0

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "passes":
        _print(requests.get(f"{base}/passes", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/reconcile", timeout=120)
        body = r.json()
        _print(body)
        return 0 if r.ok and body.get("outcome") == "reloaded" else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
