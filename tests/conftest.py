import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so tests can import local modules
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _quiet_progress(monkeypatch):
    # keep tqdm off during tests
    monkeypatch.setenv("TBA_TQDM", "0")
    yield
