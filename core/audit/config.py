from __future__ import annotations

import os
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def audit_path() -> Path:
    # Kept under the repo by default so it's easy to inspect locally.
    return Path(
        os.getenv("TREEMAP_AUDIT_PATH")
        or (_repo_root() / "data" / "audit" / "edits.duckdb")
    )


def audit_enabled() -> bool:
    v = (os.getenv("TREEMAP_AUDIT") or "1").strip().lower()
    return v not in {"0", "false", "no", "off"}
