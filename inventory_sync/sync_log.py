"""Event logging for fetch outcomes worth reviewing.

Logs rate limits, exhausted retry budgets and retrying failures as JSONL.
Controlled by the SYNC_LOGGING setting (0/1).
"""

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from config.settings import settings

logger = logging.getLogger("sync.events")

LOG_FILE_NAME = "sync_events.jsonl"

# One worker keeps appends in order
_writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync-events")


@dataclass
class SyncEvent:
    """Log entry for one notable fetch outcome."""
    timestamp: str
    operation: str
    kind: str
    retry_count: int
    will_retry: bool
    used_fallback: bool
    status_code: Optional[int]
    message: Optional[str]


def _log_file() -> Path:
    return Path(settings.sync_log_directory) / LOG_FILE_NAME


def log_event(
    operation: str,
    kind: str,
    retry_count: int,
    will_retry: bool,
    used_fallback: bool,
    status_code: Optional[int] = None,
    message: Optional[str] = None,
) -> None:
    """
    Record a fetch outcome.

    Only writes when SYNC_LOGGING=1. Absent-resource outcomes are not
    failures and are never passed here.
    """
    if not settings.sync_logging:
        return

    entry = SyncEvent(
        timestamp=datetime.utcnow().isoformat() + "Z",
        operation=operation,
        kind=kind,
        retry_count=retry_count,
        will_retry=will_retry,
        used_fallback=used_fallback,
        status_code=status_code,
        message=message,
    )

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        _write_log(entry, _log_file())
    else:
        # Keep file I/O off the event loop thread
        _writer.submit(_write_log, entry, _log_file())


def flush() -> None:
    """Block until queued entries are written."""
    _writer.submit(lambda: None).result()


def _write_log(entry: SyncEvent, log_file: Path) -> None:
    """Append an entry to the log file."""
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry)) + "\n")
    except OSError as e:
        logger.warning(f"Could not write sync event log: {e}")


def get_recent_events(limit: int = 100) -> list[dict]:
    """Read recent log entries for review."""
    log_file = _log_file()
    if not log_file.exists():
        return []

    entries = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping malformed sync event line")

    return entries[-limit:]


def clear_events() -> None:
    """Clear all log entries."""
    log_file = _log_file()
    if log_file.exists():
        log_file.unlink()
