from __future__ import annotations

import argparse
import random
import sys
from pathlib import Path
from typing import Sequence

from schizoid.db import DatabaseEnvironment
from schizoid.registry import BrainRegistry
from schizoid.service import MessageService
from schizoid.settings import load_settings
from schizoid.storage import BrainStore

from log_helpers import log, log_verbose


def build_parser(default_db_path: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sample text from a guild brain produced by train.py."
    )
    parser.add_argument(
        "--db",
        default=default_db_path,
        help="Path to the SQLite brain store produced by train.py (default: %(default)s).",
    )
    parser.add_argument(
        "--guild",
        default="local",
        help="Guild id whose brain is sampled (default: %(default)s).",
    )
    parser.add_argument(
        "--seed",
        help="Seed text for a single generation. If omitted an interactive shell starts.",
    )
    parser.add_argument(
        "--length",
        type=int,
        help="Maximum symbols generated per reply (default: SCHIZOID_GENERATE_LENGTH).",
    )
    parser.add_argument(
        "--rng-seed",
        type=int,
        help="Seed the sampler for reproducible output.",
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        default=None,
        help="Optional limit for generations in interactive mode (default: unlimited).",
    )
    return parser


def resolve_db_path(raw: str) -> str:
    if raw == ":memory:":
        raise ValueError("run.py requires a persistent database path (not :memory:)")
    path = Path(raw).expanduser()
    if not path.exists():
        raise ValueError(f"No brain store at {path}; run train.py first")
    return str(path)


def respond_once(service: MessageService, guild_id: str, seed: str, length: int | None) -> None:
    reply = service.generate(guild_id, seed, length)
    if reply is None:
        log("[run] (no output: the seed is shorter than the model context or nothing was sampled)")
        return
    log(f"brain> {reply}")


def interactive_loop(service: MessageService, guild_id: str, length: int | None, max_turns: int | None) -> None:
    log("[run] Type ':exit' or press Ctrl+D to leave, ':stats' to show the brain size.")
    turns = 0
    while max_turns is None or turns < max_turns:
        try:
            seed = input("seed> ")
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            log("[run] Interrupted. Exiting.")
            print()
            break
        command = seed.strip()
        if not command:
            continue
        if command in {":exit", ":quit"}:
            break
        if command == ":stats":
            stats = service.registry.get(guild_id).stats()
            log(
                f"[run] channels={stats['channels']} keys={stats['keys']} "
                f"symbols={stats['symbols']} vocab={stats['vocab_size']}"
            )
            continue
        respond_once(service, guild_id, seed, length)
        turns += 1
    log(f"[run] Session closed after {turns} generation(s).")


def main(argv: Sequence[str] | None = None) -> int:
    settings = load_settings()
    parser = build_parser(settings.sqlite_dsn())
    args = parser.parse_args(argv)
    log_verbose(3, f"[run:v3] Parsed CLI arguments: {vars(args)}")
    if args.length is not None and args.length < 0:
        parser.error(f"--length must be >= 0 (got {args.length})")
    try:
        db_path = resolve_db_path(args.db)
    except ValueError as exc:
        parser.error(str(exc))

    db = DatabaseEnvironment(db_path)
    registry = BrainRegistry(BrainStore(db), settings)
    rng = random.Random(args.rng_seed) if args.rng_seed is not None else None
    service = MessageService(registry, settings, rng=rng)
    try:
        if args.guild not in registry.store.guild_ids():
            log(f"[run] Guild {args.guild} has no stored brain; sampling an empty model.")
        if args.seed is not None:
            respond_once(service, args.guild, args.seed, args.length)
        else:
            interactive_loop(service, args.guild, args.length, args.max_turns)
    finally:
        # Sampling never mutates the brain; skip the save on close.
        registry.evict(args.guild, save=False)
        registry.close()
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
