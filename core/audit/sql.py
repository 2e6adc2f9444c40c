from __future__ import annotations

CREATE_EDITS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS edits (
  ts_ms BIGINT,
  operation TEXT,
  feature_id TEXT,
  common_name TEXT,
  actor TEXT,
  outcome TEXT,
  error_type TEXT,
  error_message TEXT,
  duration_ms DOUBLE
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  operation,
  outcome,
  COUNT(*) AS n,
  AVG(duration_ms) AS avg_duration_ms
FROM edits
{where_sql}
GROUP BY operation, outcome
ORDER BY operation, outcome
"""

HISTORY_SQL = """
SELECT ts_ms, operation, actor, outcome, error_type
FROM edits
WHERE feature_id = ?
ORDER BY ts_ms, operation
"""

INSERT_EDITS_SQL = """
INSERT INTO edits
  (ts_ms, operation, feature_id, common_name, actor, outcome, error_type, error_message, duration_ms)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""
