from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Dict

from .text_markers import parse_special_tokens


def _parse_env_file(path: Path) -> Dict[str, str]:
    """Minimal .env parser (no external dependency required)."""
    data: dict[str, str] = {}
    if not path.exists():
        return data
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


@dataclass(frozen=True)
class SchizoidSettings:
    db_path: str = "var/schizoid.sqlite3"
    env_file: Path | None = None
    ngram_order: int = 5
    smoothing: float = 0.0
    tokenizer: str = "char"
    special_tokens: tuple[str, ...] = ("\0",)
    generate_length: int = 100
    trigger: str = "?schizoid"
    backfill_interval_seconds: float = 30.0
    backfill_page_size: int = 25
    backfill_workers: int = 4
    save_interval_seconds: float = 300.0

    def sqlite_dsn(self) -> str:
        """Return the SQLite path used by the brain store and the CLI utilities."""
        return self.db_path


def load_settings(env_path: str | Path = ".env") -> SchizoidSettings:
    """Load schizoid settings from .env (if present) + real environment."""
    env_file = Path(env_path)
    file_values = _parse_env_file(env_file)

    def read(key: str, default: str) -> str:
        return os.environ.get(key, file_values.get(key, default))

    db_path = read("SCHIZOID_DB_PATH", "var/schizoid.sqlite3")
    ngram_order = max(1, int(read("SCHIZOID_NGRAM_ORDER", "5")))
    smoothing = max(0.0, float(read("SCHIZOID_SMOOTHING", "0.0")))
    tokenizer = read("SCHIZOID_TOKENIZER", "char").strip().lower()
    if tokenizer not in {"char", "byte"}:
        raise ValueError(f"SCHIZOID_TOKENIZER must be 'char' or 'byte' (got '{tokenizer}')")
    special_tokens = parse_special_tokens(read("SCHIZOID_SPECIAL_TOKENS", "\\0"))
    generate_length = max(0, int(read("SCHIZOID_GENERATE_LENGTH", "100")))
    trigger = read("SCHIZOID_TRIGGER", "?schizoid").strip()
    backfill_interval = max(0.1, float(read("SCHIZOID_BACKFILL_INTERVAL_SECONDS", "30")))
    page_size = max(1, int(read("SCHIZOID_BACKFILL_PAGE_SIZE", "25")))
    workers = max(1, int(read("SCHIZOID_BACKFILL_WORKERS", "4")))
    save_interval = max(0.0, float(read("SCHIZOID_SAVE_INTERVAL_SECONDS", "300")))

    env_file_used = env_file if env_file.exists() else None
    return SchizoidSettings(
        db_path=db_path,
        env_file=env_file_used,
        ngram_order=ngram_order,
        smoothing=smoothing,
        tokenizer=tokenizer,
        special_tokens=special_tokens,
        generate_length=generate_length,
        trigger=trigger,
        backfill_interval_seconds=backfill_interval,
        backfill_page_size=page_size,
        backfill_workers=workers,
        save_interval_seconds=save_interval,
    )
