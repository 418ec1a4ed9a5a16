"""Atomic CSV write helpers.

Callers should use `write_csv()`; it writes through a temporary file in the
target directory and moves it into place, copying any existing file to a
backup first so a crashed run never leaves a half-written report.
"""
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd


def _compute_backup_path(p: Path, backup_name: Optional[str]) -> Path:
    """Backup path for `p`.

    - backup_name None -> <stem>_prev<suffix>
    - backup_name with a suffix -> used as the exact file name
    - otherwise -> <stem>_<backup_name><suffix>
    """
    if backup_name is None:
        return p.with_name(p.stem + "_prev" + p.suffix)
    bn = str(backup_name)
    if Path(bn).suffix:
        return p.with_name(bn)
    return p.with_name(p.stem + "_" + bn + p.suffix)


def atomic_backup_write(
    df: pd.DataFrame,
    path: Path,
    backup_name: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    p = Path(path)
    if dry_run:
        if p.exists():
            print(f"DRY RUN: would backup existing {p} -> {_compute_backup_path(p, backup_name)}")
        print(f"DRY RUN: would write DataFrame -> {p} (rows={len(df)})")
        return

    p.parent.mkdir(parents=True, exist_ok=True)
    if p.exists():
        shutil.copy2(p, _compute_backup_path(p, backup_name))

    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(p.parent), prefix=p.name + ".tmp.", newline="") as tf:
        tmp = Path(tf.name)
        df.to_csv(tf, index=False)
    tmp.replace(p)


def write_csv(df: pd.DataFrame, path: Path, *, dry_run: bool = False, backup_name: Optional[str] = None) -> None:
    """Write `df` as CSV with atomic backup semantics; honors dry_run."""
    atomic_backup_write(df=df, path=Path(path), backup_name=backup_name, dry_run=dry_run)
