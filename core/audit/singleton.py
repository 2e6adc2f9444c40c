from __future__ import annotations

import threading

import duckdb

from audit.config import audit_enabled, audit_path
from audit.store import AuditStore

_STORE: AuditStore | None = None
_STORE_LOCK = threading.RLock()


def get_store() -> AuditStore | None:
    global _STORE
    if not audit_enabled():
        return None
    with _STORE_LOCK:
        path = audit_path()
        if _STORE is not None:
            # If the configured path changes (e.g. across tests), reopen on the new path.
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            _STORE.stop(timeout_s=2.0)
            _STORE.conn.close()
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(str(path))
        _STORE = AuditStore(path=path, conn=conn)
        _STORE.ensure_schema()
        _STORE.start()
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            audit_path().unlink(missing_ok=True)
