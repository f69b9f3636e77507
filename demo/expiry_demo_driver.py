#!/usr/bin/env python3
"""Expiry Engine Demo Driver

Writes documents with short TTLs into an in-memory store while the
background sweeper expires them, and samples metrics to CSV.

Usage:
    python demo/expiry_demo_driver.py --write-rate 500 --duration-seconds 30
"""

from __future__ import annotations

import argparse
import csv
import logging
import random
import time
from collections import defaultdict

from doc_expiry import (
    ExpiryConfig,
    ExpiryEngine,
    MemoryServer,
    NotFoundError,
    Settings,
    SweepScheduler,
    load_config,
    make_doc,
)
from doc_expiry.components.docstore import MemoryDatabase


def run_demo(args: argparse.Namespace) -> None:
    """Run the demo workload and collect metrics."""
    if args.config:
        cfg, settings = load_config(args.config)
    else:
        cfg = ExpiryConfig(
            page_size=args.page_size,
            continue_threshold=args.continue_threshold,
            sweep_interval_seconds=args.sweep_interval_seconds,
        )
        settings = Settings()
        settings.set_default_ttl(args.default_ttl)

    server = MemoryServer()
    db = server.create_db(args.db_name)
    engine = ExpiryEngine(server, args.db_name, settings=settings, config=cfg)
    engine.ensure_index()

    counters = defaultdict(int)
    next_id = 0

    print(f"Starting expiry demo for {args.duration_seconds}s...")
    print(f"Config: page_size={cfg.page_size}, threshold={cfg.continue_threshold}, "
          f"default_ttl={settings.default_ttl()}s")
    print(f"Workload: write={args.write_rate}/s, read={args.read_rate}/s, "
          f"ttl in [{args.min_ttl}, {args.max_ttl}]s")
    print(f"Output: {args.out_csv}")

    with SweepScheduler(engine) as scheduler, open(args.out_csv, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["ts_ms", "writes", "reads", "read_misses", "live_docs",
                    "sweeps", "swept_total", "conflicts_total"])

        t_start = time.time()
        next_sample = t_start + args.sample_ms / 1000.0
        swept_total = 0
        conflicts_total = 0
        last_report = None

        while time.time() - t_start < args.duration_seconds:
            if maybe(args.write_rate):
                now = int(time.time())
                # some documents rely on the default TTL
                ttl = None if random.random() < args.no_ttl_fraction else random.randint(args.min_ttl, args.max_ttl)
                db.put(f"doc-{next_id:08d}", make_doc(timestamp=now, ttl=ttl, n=next_id))
                next_id += 1
                counters["writes"] += 1

            if next_id and maybe(args.read_rate):
                doc_id = f"doc-{random.randrange(next_id):08d}"
                counters["reads"] += 1
                try:
                    engine.open_doc(doc_id)
                except NotFoundError:
                    counters["read_misses"] += 1

            report = scheduler.last_report
            if report is not None and report is not last_report:
                swept_total += report.deleted
                conflicts_total += report.conflicts
                last_report = report

            if time.time() >= next_sample:
                w.writerow(sample_row(db, counters, scheduler.ticks, swept_total, conflicts_total))
                next_sample += args.sample_ms / 1000.0

            time.sleep(0.0005)

    print(f"Demo complete: {counters['writes']} writes, {swept_total} swept, "
          f"{db.doc_count()} live. Metrics written to {args.out_csv}")


def maybe(rate_per_sec: float) -> bool:
    """Return True with the probability of one event per loop at this rate."""
    if rate_per_sec <= 0:
        return False
    return random.random() < rate_per_sec / 2000.0


def sample_row(
    db: MemoryDatabase, counters: dict, sweeps: int, swept_total: int, conflicts_total: int
) -> list:
    return [
        int(time.time() * 1000),
        counters["writes"],
        counters["reads"],
        counters["read_misses"],
        db.doc_count(),
        sweeps,
        swept_total,
        conflicts_total,
    ]


def main() -> None:
    """Parse arguments and run demo."""
    p = argparse.ArgumentParser(description="Expiry engine live demo driver")

    # Engine configuration
    p.add_argument("--config", help="TOML config file (overrides engine flags)")
    p.add_argument("--db-name", default="demo", help="Database name")
    p.add_argument("--page-size", type=int, default=100, help="Entries examined per sweep pass")
    p.add_argument(
        "--continue-threshold",
        type=int,
        default=25,
        help="Run another pass when more entries than this expired",
    )
    p.add_argument(
        "--sweep-interval-seconds", type=float, default=1.0, help="Delay between sweeps"
    )
    p.add_argument("--default-ttl", type=int, default=0, help="Default TTL in seconds (0 = none)")

    # Workload configuration
    p.add_argument(
        "--duration-seconds", type=int, default=30, help="Duration of the demo"
    )
    p.add_argument("--write-rate", type=float, default=500, help="Write ops/sec")
    p.add_argument("--read-rate", type=float, default=100, help="Read ops/sec")
    p.add_argument("--min-ttl", type=int, default=1, help="Minimum document TTL")
    p.add_argument("--max-ttl", type=int, default=10, help="Maximum document TTL")
    p.add_argument(
        "--no-ttl-fraction",
        type=float,
        default=0.1,
        help="Fraction of documents written without their own TTL",
    )

    # Sampling configuration
    p.add_argument(
        "--sample-ms", type=int, default=500, help="Sampling interval in ms"
    )
    p.add_argument(
        "--out-csv", default="/tmp/expiry_metrics.csv", help="Output CSV file"
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = p.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    run_demo(args)


if __name__ == "__main__":
    main()
