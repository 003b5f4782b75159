"""
VaultFlow Logging — JSONL audit trail for vault mutations.

Every mutation, blob transfer and sync milestone produces a LogEntry
routed to one audit stream (object type + category). Streams are daily
JSONL files under ``{log_dir}/{object_type}/{category}/``. Entries are
pushed onto AsyncLogQueue and written by its flush thread, so callers on
the event loop never block on disk.

Operator diagnostics go through stdlib ``logging`` as usual; this module
only carries the audit trail.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

from vaultflow.engine.config import LoggingConfig, get_config

logger = logging.getLogger("vaultflow.engine.logging")

# Audit streams: object type -> categories it writes
OBJECT_TYPE_CATEGORIES = {
    "files": ["execution", "performance"],
    "folders": ["execution"],
    "versions": ["execution", "performance"],
    "blobs": ["execution", "performance"],
    "sync": ["execution"],
    "system": ["execution"],
}


class LogEntry:
    """One audit record and the stream it belongs to."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        if category not in OBJECT_TYPE_CATEGORIES.get(object_type, ()):
            raise ValueError(f"Unknown audit stream '{object_type}/{category}'")
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Appends audit entries to ``{log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl``.

    Stream directories are created on first write.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._lock = threading.Lock()

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def stream_dir(self, object_type: str, category: str) -> Path:
        return self._log_dir / object_type / category

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Append entries, opening each day file once per batch."""
        by_stream: Dict[Path, List[str]] = defaultdict(list)
        for entry in entries:
            by_stream[self.stream_dir(entry.object_type, entry.category)].append(entry.to_json())

        day_file = f"{date.today().isoformat()}.jsonl"
        with self._lock:
            for directory, lines in by_stream.items():
                directory.mkdir(parents=True, exist_ok=True)
                with open(directory / day_file, "a", encoding="utf-8") as f:
                    f.write("\n".join(lines))
                    f.write("\n")

    def query(
        self,
        object_type: str,
        category: str,
        *,
        days: int = 7,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Entries from the last ``days`` day files (today included), newest first.

        ``filters`` are exact matches on top-level keys. Unreadable lines are skipped.
        """
        directory = self.stream_dir(object_type, category)
        results: List[Dict[str, Any]] = []
        for offset in range(days):
            if len(results) >= limit:
                break
            path = directory / f"{(date.today() - timedelta(days=offset)).isoformat()}.jsonl"
            if not path.exists():
                continue
            day: List[Dict[str, Any]] = []
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and any(data.get(k) != v for k, v in filters.items()):
                        continue
                    day.append(data)
            results.extend(reversed(day))
        return results[:limit]


class AsyncLogQueue:
    """
    Bounded in-memory queue drained by a daemon thread.

    push() never blocks: when the queue is full the entry is dropped and
    counted. The thread writes whatever has accumulated, up to
    flush_batch_size entries, at least every flush_interval_ms.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._writer = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="vaultflow-audit-flush", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread, then write everything still queued."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        while self._flush_once(block=False):
            pass
        if self._dropped:
            logger.warning(f"Audit queue dropped {self._dropped} entries")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry; False if it was dropped."""
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._flush_once(block=True)

    def _flush_once(self, block: bool) -> int:
        batch: List[LogEntry] = []
        try:
            batch.append(self._queue.get(timeout=self._interval) if block else self._queue.get_nowait())
            while len(batch) < self._batch_size:
                batch.append(self._queue.get_nowait())
        except Empty:
            pass
        if batch:
            try:
                self._writer.write_batch(batch)
            except OSError as e:
                logger.error(f"Audit log write failed ({len(batch)} entries lost): {e}")
        return len(batch)


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    object_ref: str,
    account: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "object_ref": object_ref,
    }
    if account:
        entry["account"] = account
    entry.update(extra)
    return entry


def _attach_error(data: Dict[str, Any], error: Optional[Any]) -> None:
    if error is None:
        return
    data["error"] = str(error)
    error_type = getattr(error, "error_type", None)
    if error_type:
        data["error_type"] = error_type
    step = getattr(error, "step", None)
    if step:
        data["step"] = step


def log_file_operation(
    operation: str,
    account: str,
    file_id: Optional[str],
    success: bool,
    duration_ms: Optional[float] = None,
    blob_key: Optional[str] = None,
    size_bytes: Optional[int] = None,
    error: Optional[Any] = None,
) -> LogEntry:
    """Build a file mutation log entry (upload/delete/rename/refresh)."""
    data = _base_entry(
        event=f"file_{operation}",
        level="INFO" if success else "ERROR",
        object_ref=f"files.{file_id}" if file_id else "files",
        account=account,
        operation=operation,
        success=success,
    )
    if file_id:
        data["file_id"] = file_id
    if blob_key:
        data["blob_key"] = blob_key
    if size_bytes is not None:
        data["size_bytes"] = size_bytes
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 2)
    _attach_error(data, error)
    return LogEntry("files", "execution", data)


def log_folder_operation(
    operation: str,
    account: str,
    folder_id: Optional[str],
    success: bool,
    parent_id: Optional[str] = None,
    error: Optional[Any] = None,
) -> LogEntry:
    """Build a folder mutation log entry (create/rename/delete)."""
    data = _base_entry(
        event=f"folder_{operation}",
        level="INFO" if success else "ERROR",
        object_ref=f"folders.{folder_id}" if folder_id else "folders",
        account=account,
        operation=operation,
        success=success,
    )
    if folder_id:
        data["folder_id"] = folder_id
    if parent_id:
        data["parent_id"] = parent_id
    _attach_error(data, error)
    return LogEntry("folders", "execution", data)


def log_version_event(
    event: str,
    account: str,
    file_id: str,
    success: bool,
    version_id: Optional[str] = None,
    history_length: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[Any] = None,
) -> LogEntry:
    """Build a versioning log entry (version_committed / version_restored)."""
    data = _base_entry(
        event=event,
        level="INFO" if success else "ERROR",
        object_ref=f"files.{file_id}.versions",
        account=account,
        file_id=file_id,
        success=success,
    )
    if version_id:
        data["version_id"] = version_id
    if history_length is not None:
        data["history_length"] = history_length
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 2)
    _attach_error(data, error)
    return LogEntry("versions", "execution", data)


def log_blob_transfer(
    operation: str,
    blob_key: str,
    success: bool,
    size_bytes: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[Any] = None,
) -> LogEntry:
    """Build a blob store performance entry (put/delete)."""
    data = _base_entry(
        event=f"blob_{operation}",
        level="INFO" if success else "ERROR",
        object_ref=f"blobs.{blob_key}",
        blob_key=blob_key,
        success=success,
    )
    if size_bytes is not None:
        data["size_bytes"] = size_bytes
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 2)
    _attach_error(data, error)
    return LogEntry("blobs", "performance", data)


def log_sync_event(
    event: str,
    account: str,
    collection: str,
    document_count: Optional[int] = None,
) -> LogEntry:
    """Build a realtime sync log entry (subscribed, first snapshot, unsubscribed)."""
    data = _base_entry(
        event=event,
        level="INFO",
        object_ref=f"sync.{collection}",
        account=account,
        collection=collection,
    )
    if document_count is not None:
        data["document_count"] = document_count
    return LogEntry("sync", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, reconciliation)."""
    data = _base_entry(
        event=event,
        level=level,
        object_ref="system",
    )
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize the global async log queue."""
    global _global_queue
    file_logger = FileLogger(log_dir=log_dir)
    _global_queue = AsyncLogQueue(
        file_logger=file_logger,
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def init_logging_from_config(config: Optional[LoggingConfig] = None) -> AsyncLogQueue:
    """Apply the logging section of vaultflow.yaml: stdlib level plus the audit queue."""
    config = config or get_config().logging
    logging.getLogger("vaultflow").setLevel(config.level.upper())
    return init_logging(
        log_dir=config.directory,
        flush_interval_ms=config.flush_interval_ms,
        flush_batch_size=config.flush_batch_size,
        max_queue_size=config.max_queue_size,
    )


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.debug("Log queue not initialized, entry dropped: %s", entry.data.get("event"))
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
