from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from typing import Optional

from tqdm import tqdm


def _should_show_tqdm() -> bool:
    """Decide whether the batch progress bar is drawn.

    - TBA_TQDM=1 forces display
    - TBA_TQDM=0 disables
    - CI environment disables
    - otherwise only when stdout is a TTY
    """
    if os.getenv("TBA_TQDM") == "1":
        return True
    if os.getenv("TBA_TQDM") == "0":
        return False
    if os.getenv("CI"):
        return False
    try:
        return bool(sys.stdout.isatty())
    except (AttributeError, ValueError):
        return False


class Timer:
    def __init__(self, label: str = "task"):
        self.label = label
        self.start = 0.0
        self.elapsed = 0.0

    def __enter__(self):
        self.start = time.perf_counter()
        print(f">>> {self.label} ...")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed = time.perf_counter() - self.start
        status = "OK" if exc is None else "ERROR"
        print(f"[{status}] {self.label}: {self.elapsed:.2f}s")


@contextmanager
def progress_bar(total: Optional[int], desc: str = "", enabled: bool = True):
    """Item-count progress bar; hidden unless `enabled` and the terminal allows it."""
    disable = not (enabled and _should_show_tqdm())
    with tqdm(total=total, desc=desc, unit="user", disable=disable) as bar:
        yield bar
