"""
Utility functions for the box-office identity pipeline.

Logging, request pacing, timing and the CLI's terminal output.
"""

import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional, TypeVar

from tqdm import tqdm

T = TypeVar("T")

ROOT_LOGGER = "boxoffice"


def _configure_root(log_dir: Path, level: int, console_output: bool) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    root.setLevel(level)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(
        log_dir / f"{ROOT_LOGGER}_{datetime.now().strftime('%Y%m%d')}.log"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return root


def setup_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: int = logging.INFO,
    console_output: bool = True,
) -> logging.Logger:
    """
    Get a pipeline component logger.

    Every component logs under ``boxoffice.<name>`` into one daily file, so a
    correction can be followed across merge, enrichment and backfill in order.
    Handlers are attached once, by whichever component asks first.

    Args:
        name: Component name (merge, enrichment, tmdb_client, ...)
        log_dir: Directory for the log file (defaults to ./logs)
        level: Logging level
        console_output: Whether warnings are echoed to stdout
    """
    _configure_root(log_dir or Path.cwd() / "logs", level, console_output)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class RateLimiter:
    """
    Spaces outgoing requests at least 1/requests_per_second apart.

    Thread-safe: the enrichment fetcher's three workers reserve slots from one
    schedule. The lock only guards the reservation; waiting happens outside it.
    """

    def __init__(self, requests_per_second: int = 35):
        self.interval = 1.0 / requests_per_second
        self._next_slot = 0.0
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until this caller's slot comes up."""
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)


def progress_bar(
    iterable: Iterable[T],
    total: Optional[int] = None,
    desc: str = "Processing",
    unit: str = "items",
    disable: bool = False,
) -> Iterator[T]:
    """Wrap an iterable with a tqdm progress bar."""
    return tqdm(
        iterable,
        total=total,
        desc=desc,
        unit=unit,
        disable=disable,
        ncols=100,
        bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
    )


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{seconds / 60:.1f}m"


def print_header(text: str, width: int = 60) -> None:
    print("=" * width)
    print(text.center(width))
    print("=" * width)


def print_report(data: dict, title: str) -> None:
    """Print a key/value block. Nested dicts are flattened as ``parent.child``."""
    rows = []
    for key, value in data.items():
        if isinstance(value, dict):
            rows.extend((f"{key}.{k}", v) for k, v in value.items())
        else:
            rows.append((str(key), value))

    print(f"\n{title}")
    print("-" * 40)
    width = max((len(k) for k, _ in rows), default=10)
    for key, value in rows:
        print(f"  {key:<{width + 2}}: {value}")
    print()


class Timer:
    """Context manager measuring wall time of a block."""

    def __init__(self, description: str = "Operation"):
        self.description = description
        self.elapsed = 0.0
        self._start = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self._start

    def __str__(self) -> str:
        return f"{self.description}: {format_duration(self.elapsed)}"
