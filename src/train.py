from __future__ import annotations

import argparse
import dataclasses
import sys
import time
from pathlib import Path
from typing import List, Sequence

from schizoid.adapters.archive import ArchiveTransport
from schizoid.backfill import BackfillScheduler
from schizoid.brain import Brain
from schizoid.db import DatabaseEnvironment
from schizoid.registry import BrainRegistry
from schizoid.settings import SchizoidSettings, load_settings
from schizoid.storage import BrainStore

from helpers.resource_monitor import Profiler
from log_helpers import log, log_verbose

ARCHIVE_SUFFIXES = (".jsonl", ".ndjson", ".json")


def build_parser(default_db_path: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fold NDJSON message archives into a guild brain stored in SQLite."
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        help="NDJSON archives (one message per line) or directories containing *.jsonl/*.ndjson files.",
    )
    parser.add_argument(
        "--db",
        default=default_db_path,
        help="Path to the SQLite brain store (default: %(default)s).",
    )
    parser.add_argument(
        "--guild",
        default="local",
        help="Guild id whose brain receives the messages (default: %(default)s).",
    )
    parser.add_argument(
        "--ngram-order",
        type=int,
        help="N-gram order for a newly created brain (default: SCHIZOID_NGRAM_ORDER).",
    )
    parser.add_argument(
        "--smoothing",
        type=float,
        help="Additive smoothing for a newly created brain (default: SCHIZOID_SMOOTHING).",
    )
    parser.add_argument(
        "--tokenizer",
        choices=("char", "byte"),
        help="Tokenizer variant for a newly created brain (default: SCHIZOID_TOKENIZER).",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="When a directory is provided, recursively collect archives.",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Discard the guild's stored brain before training.",
    )
    parser.add_argument(
        "--forget",
        action="store_true",
        help="Retract the archived messages instead of training on them.",
    )
    parser.add_argument(
        "--backfill-ticks",
        type=int,
        default=0,
        help=(
            "Instead of a linear ingest, seed each channel with its newest message and walk the "
            "archive backwards for up to N backfill ticks (default: disabled)."
        ),
    )
    parser.add_argument(
        "--page-size",
        type=int,
        help="Messages fetched per backfill tick (default: SCHIZOID_BACKFILL_PAGE_SIZE).",
    )
    parser.add_argument(
        "--profile-ingest",
        action="store_true",
        help="Log duration, CPU and RSS for the ingest and each backfill page.",
    )
    return parser


def resolve_db_path(raw: str) -> str:
    if raw == ":memory:":
        raise ValueError("train.py requires a persistent database path (not :memory:)")
    path = Path(raw).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


def collect_files(entries: Sequence[str], recursive: bool) -> List[Path]:
    files: list[Path] = []
    for entry in entries:
        path = Path(entry).expanduser()
        if path.is_file():
            files.append(path)
            log_verbose(3, f"[train:v3] Queued archive {path}")
            continue
        if path.is_dir():
            pattern = "**/*" if recursive else "*"
            for candidate in sorted(path.glob(pattern)):
                if candidate.is_file() and candidate.suffix.lower() in ARCHIVE_SUFFIXES:
                    files.append(candidate)
                    log_verbose(3, f"[train:v3] Discovered archive {candidate}")
            continue
        raise FileNotFoundError(f"No such file or directory: {path}")
    return files


def apply_overrides(settings: SchizoidSettings, args: argparse.Namespace) -> SchizoidSettings:
    overrides: dict[str, object] = {}
    if args.ngram_order is not None:
        if args.ngram_order < 1:
            raise ValueError(f"--ngram-order must be >= 1 (got {args.ngram_order})")
        overrides["ngram_order"] = args.ngram_order
    if args.smoothing is not None:
        if args.smoothing < 0:
            raise ValueError(f"--smoothing must be >= 0 (got {args.smoothing})")
        overrides["smoothing"] = args.smoothing
    if args.tokenizer is not None:
        overrides["tokenizer"] = args.tokenizer
    if args.page_size is not None:
        if args.page_size < 1:
            raise ValueError(f"--page-size must be >= 1 (got {args.page_size})")
        overrides["backfill_page_size"] = args.page_size
    return dataclasses.replace(settings, **overrides) if overrides else settings


class ProgressPrinter:
    """Throttled progress logs for long archives."""

    def __init__(self, label: str, total: int) -> None:
        self.label = label
        self.total = max(1, total)
        self._last_emit = 0.0

    def __call__(self, completed: int) -> None:
        now = time.perf_counter()
        if completed != self.total and (now - self._last_emit) < 0.75:
            return
        self._last_emit = now
        pct = (completed / self.total) * 100.0
        log(f"[train] {self.label}: {pct:5.1f}% ({completed}/{self.total})")


def ingest_archive(brain: Brain, transport: ArchiveTransport) -> int:
    messages = transport.messages()
    progress = ProgressPrinter("observe", len(messages))
    trained = 0
    for idx, message in enumerate(messages, start=1):
        if brain.observe(message):
            trained += 1
        progress(idx)
    return trained


def forget_archive(brain: Brain, transport: ArchiveTransport) -> int:
    messages = transport.messages()
    progress = ProgressPrinter("forget", len(messages))
    forgotten = 0
    for idx, message in enumerate(messages, start=1):
        if brain.forget(message):
            forgotten += 1
        progress(idx)
    return forgotten


def backfill_archive(
    registry: BrainRegistry,
    guild_id: str,
    transport: ArchiveTransport,
    ticks: int,
    *,
    profile: bool,
) -> int:
    brain = registry.get(guild_id)
    scheduler = BackfillScheduler(registry, transport, profile=profile)
    seeded = 0
    for channel_id in transport.channel_ids():
        newest = transport.latest(channel_id)
        if newest is None:
            continue
        if brain.observe(newest):
            seeded += 1
        scheduler.watch(guild_id, channel_id)
    log(f"[train] Seeded {seeded} channel(s); walking history for up to {ticks} tick(s).")
    fetched_total = 0
    try:
        for tick in range(1, ticks + 1):
            fetched = scheduler.run_once()
            fetched_total += fetched
            log_verbose(2, f"[train] Backfill tick {tick}: fetched {fetched} message(s).")
            if fetched == 0:
                log(f"[train] History exhausted after {tick} tick(s).")
                break
    finally:
        scheduler.stop()
    return fetched_total


def main(argv: Sequence[str] | None = None) -> int:
    settings = load_settings()
    parser = build_parser(settings.sqlite_dsn())
    args = parser.parse_args(argv)
    log_verbose(3, f"[train:v3] Parsed CLI arguments: {vars(args)}")
    if args.forget and args.backfill_ticks:
        parser.error("--forget cannot be combined with --backfill-ticks")
    try:
        settings = apply_overrides(settings, args)
        db_path = resolve_db_path(args.db)
        files = collect_files(args.inputs, args.recursive)
    except (ValueError, FileNotFoundError) as exc:
        parser.error(str(exc))
    if not files:
        parser.error("No message archives found in the provided inputs")

    transport = ArchiveTransport.from_paths(files)
    log(f"[train] Loaded {len(transport.messages())} message(s) via {transport.describe()}")
    db = DatabaseEnvironment(db_path)
    store = BrainStore(db)
    if args.reset:
        store.delete(args.guild)
        log(f"[train] Discarded stored brain for guild {args.guild}.")
    registry = BrainRegistry(store, settings)
    profiler = Profiler(args.profile_ingest, log)
    try:
        brain = registry.get(args.guild)
        if args.forget:
            count = profiler.measure("forget", lambda: forget_archive(brain, transport))
            log(f"[train] Forgot {count} message(s).")
        elif args.backfill_ticks > 0:
            count = backfill_archive(
                registry,
                args.guild,
                transport,
                args.backfill_ticks,
                profile=args.profile_ingest,
            )
            log(f"[train] Backfill fetched {count} message(s).")
        else:
            count = profiler.measure("observe", lambda: ingest_archive(brain, transport))
            log(f"[train] Trained on {count} new message(s).")
        stats = brain.stats()
        log(
            f"[train] Guild {args.guild}: channels={stats['channels']} keys={stats['keys']} "
            f"symbols={stats['symbols']} vocab={stats['vocab_size']}"
        )
    finally:
        registry.close()
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
