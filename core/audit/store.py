from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb
from loguru import logger

from audit.sql import (
    CREATE_EDITS_TABLE_SQL,
    HISTORY_SQL,
    INSERT_EDITS_SQL,
    SUMMARY_SQL_TEMPLATE,
)


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class _FlushRequest:
    done: threading.Event


@dataclass
class AuditStore:
    """
    Append-only log of edit outcomes (adds, removals, rejections).

    Writes are queued and batched by a single writer thread so that recording an
    edit never blocks the event loop on disk I/O.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[Any]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EDITS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="audit-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread; queued rows are written before it exits.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        operation: str,
        feature_id: str | None,
        common_name: str | None,
        actor: str | None,
        outcome: str,
        error_type: str | None = None,
        error_message: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        # Non-blocking: enqueue and return.
        self.start()
        self._q.put_nowait(
            {
                "ts_ms": int(time.time() * 1000),
                "operation": str(operation),
                "feature_id": feature_id,
                "common_name": common_name,
                "actor": actor,
                "outcome": str(outcome),
                "error_type": error_type,
                "error_message": error_message,
                "duration_ms": _safe_float(duration_ms),
            }
        )

    def flush(self, *, timeout_s: float = 2.0) -> bool:
        """
        Block until everything recorded so far is written. Returns False on timeout.
        """
        if self._worker is None:
            return True
        req = _FlushRequest(done=threading.Event())
        self._q.put_nowait(req)
        return req.done.wait(timeout=timeout_s)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(self, *, operation: str | None = None) -> list[dict[str, Any]]:
        where = []
        params: list[Any] = []
        if operation:
            where.append("operation = ?")
            params.append(operation)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)
        return [
            {
                "operation": op,
                "outcome": outcome,
                "n": int(n),
                "avgDurationMs": _safe_float(avg_ms),
            }
            for op, outcome, n, avg_ms in rows
        ]

    def history(self, feature_id: str) -> list[dict[str, Any]]:
        rows = self.query(HISTORY_SQL, [str(feature_id)])
        return [
            {
                "tsMs": int(ts_ms),
                "operation": op,
                "actor": actor,
                "outcome": outcome,
                "errorType": error_type,
            }
            for ts_ms, op, actor, outcome, error_type in rows
        ]

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            self.conn.close()
            self.path.unlink(missing_ok=True)

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[dict[str, Any]] = []
        last_flush = time.time()

        def flush_batch() -> None:
            nonlocal batch
            if not batch:
                return
            with self._lock:
                self.conn.executemany(
                    INSERT_EDITS_SQL,
                    [
                        (
                            e["ts_ms"],
                            e["operation"],
                            e["feature_id"],
                            e["common_name"],
                            e["actor"],
                            e["outcome"],
                            e["error_type"],
                            e["error_message"],
                            e["duration_ms"],
                        )
                        for e in batch
                    ],
                )
            batch = []

        def handle(item: Any) -> None:
            if isinstance(item, _FlushRequest):
                flush_batch()
                item.done.set()
            else:
                batch.append(item)

        while not self._stop.is_set():
            try:
                item = self._q.get(timeout=0.1)
            except queue.Empty:
                item = None

            if item is not None:
                handle(item)
                self._q.task_done()

            # Flush on size or time.
            now = time.time()
            if len(batch) >= 100 or (batch and (now - last_flush) >= 0.5):
                flush_batch()
                last_flush = now

        # Drain remaining
        while True:
            try:
                item = self._q.get_nowait()
            except queue.Empty:
                break
            handle(item)
            self._q.task_done()
        flush_batch()
        logger.debug("Audit writer stopped ({})", self.path)
