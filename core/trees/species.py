from __future__ import annotations

from pathlib import Path

import duckdb
from loguru import logger


SpeciesTable = dict[str, dict[str, str]]


def load_species_table(path: Path) -> SpeciesTable:
    """
    Species reference table (`tree_information.csv`), keyed by `tree_id`.

    Every column is kept as text; missing cells become "". Rows without a
    `tree_id` are dropped.
    """
    conn = duckdb.connect(database=":memory:")
    try:
        cur = conn.execute(
            "SELECT * FROM read_csv(?, header = true, all_varchar = true)", [str(path)]
        )
        cols = [str(d[0]) for d in cur.description]
        rows = cur.fetchall()
    finally:
        conn.close()

    out: SpeciesTable = {}
    for row in rows:
        rec = {c: (v or "").strip() for c, v in zip(cols, row)}
        tree_id = rec.get("tree_id", "")
        if tree_id:
            out[tree_id] = rec
    logger.info("Loaded {} species from {}", len(out), path.name)
    return out
