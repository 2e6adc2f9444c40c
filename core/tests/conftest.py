import sys
from pathlib import Path

import pytest


# Ensure `core/` is on sys.path so tests can import local packages
# like `clusters.*`, `trees.*`, and `engine.*`; `tests/` for the shared fakes.
CORE_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(CORE_ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))


@pytest.fixture(autouse=True)
def _no_audit_by_default(monkeypatch):
    # Tests that exercise the audit log opt back in explicitly.
    monkeypatch.setenv("TREEMAP_AUDIT", "0")
