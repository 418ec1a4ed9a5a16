from pathlib import Path

import pandas as pd

from tba.lib.io_guards import _compute_backup_path, write_csv


def test_backup_path_naming():
    p = Path("/tmp/out/segments.csv")
    assert _compute_backup_path(p, None).name == "segments_prev.csv"
    assert _compute_backup_path(p, "old").name == "segments_old.csv"
    assert _compute_backup_path(p, "keep.csv").name == "keep.csv"


def test_write_creates_dirs_and_backs_up(tmp_path):
    out = tmp_path / "u1" / "segments.csv"
    write_csv(pd.DataFrame({"a": [1]}), out)
    assert pd.read_csv(out)["a"].tolist() == [1]

    write_csv(pd.DataFrame({"a": [2, 3]}), out)
    assert pd.read_csv(out)["a"].tolist() == [2, 3]
    assert pd.read_csv(out.with_name("segments_prev.csv"))["a"].tolist() == [1]
    # no temp files left behind
    assert sorted(x.name for x in out.parent.iterdir()) == ["segments.csv", "segments_prev.csv"]


def test_dry_run_writes_nothing(tmp_path, capsys):
    out = tmp_path / "u1" / "segments.csv"
    write_csv(pd.DataFrame({"a": [1]}), out, dry_run=True)
    assert not out.exists()
    assert "DRY RUN: would write DataFrame" in capsys.readouterr().out
