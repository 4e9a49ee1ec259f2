"""
Outbound analytics event sinks.

The engine emits one AnalyticsEvent per lifecycle transition, assignment,
exclusion and observation. ``FileEventSink`` buffers events and writes them
per experiment, one part file per batch, to parquet (or csv fallback) under
data/experiments/<experiment_id>/, and can read them back by time window for
downstream analysis.
"""

import json
import logging
import queue
import threading
import time
import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .config import DEFAULT_EVENT_DIR, EngineSettings
from .schema import AnalyticsEvent

logger = logging.getLogger(__name__)

try:
    import pyarrow
    _USE_PARQUET = True
except ImportError:
    _USE_PARQUET = False


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def _extension() -> str:
    return "parquet" if _USE_PARQUET else "csv"


def _part_path(experiment_id: str, base_dir: str = DEFAULT_EVENT_DIR) -> Path:
    # time-ordered names; the suffix keeps concurrent writers apart
    name = f"events-{time.time_ns():020d}-{uuid.uuid4().hex[:8]}.{_extension()}"
    return Path(base_dir) / experiment_id / name


def _part_paths(experiment_id: str, base_dir: str = DEFAULT_EVENT_DIR) -> List[Path]:
    return sorted((Path(base_dir) / experiment_id).glob(f"events-*.{_extension()}"))


def _read_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        return pd.DataFrame()
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _write_table(df: pd.DataFrame, path: Path) -> None:
    if path.suffix == ".parquet":
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def _event_to_row(evt: AnalyticsEvent) -> dict:
    return {
        "event_type": evt.event_type,
        "experiment_id": evt.experiment_id,
        "occurred_at": evt.occurred_at,
        "variant_id": evt.variant_id,
        "subject_id": evt.subject_id,
        "metric": evt.metric,
        "value": evt.value,
        "attributes": json.dumps(evt.attributes, default=str) if evt.attributes else "",
    }


class EventSink:
    """Fire-and-forget destination for analytics events."""

    def emit(self, event: AnalyticsEvent) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass


class NullEventSink(EventSink):
    """Discards events."""

    def emit(self, event: AnalyticsEvent) -> None:
        pass


class MemoryEventSink(EventSink):
    """Keeps events in a list; used by simulations and tests."""

    def __init__(self):
        self.events: List[AnalyticsEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: AnalyticsEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> List[AnalyticsEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


class FileEventSink(EventSink):
    """
    Buffers events and writes them as per-experiment part files.

    ``emit`` only appends to an in-memory buffer. Full batches go to a single
    background writer thread, so callers never wait on disk I/O. Call
    ``flush`` or ``close`` before reading the files back; events still
    buffered when the process exits without ``close`` are lost.
    """

    def __init__(self, base_dir: str = DEFAULT_EVENT_DIR, flush_every: int = 500):
        if flush_every <= 0:
            raise ValueError("flush_every must be positive")
        self.base_dir = base_dir
        self.flush_every = flush_every
        self._buffer: List[AnalyticsEvent] = []
        self._lock = threading.Lock()
        self._closed = False
        self._queue: "queue.Queue[Optional[List[AnalyticsEvent]]]" = queue.Queue()
        self._writer = threading.Thread(target=self._run, name="event-sink-writer", daemon=True)
        self._writer.start()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "FileEventSink":
        return cls(base_dir=settings.event_dir, flush_every=settings.event_flush_every)

    def emit(self, event: AnalyticsEvent) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("FileEventSink is closed")
            self._buffer.append(event)
            if len(self._buffer) < self.flush_every:
                return
            batch, self._buffer = self._buffer, []
            # unbounded queue: put never blocks
            self._queue.put(batch)

    def flush(self) -> None:
        """Hand buffered events to the writer and wait until all queued batches are written."""
        with self._lock:
            batch, self._buffer = self._buffer, []
            if batch:
                self._queue.put(batch)
        self._queue.join()

    def close(self) -> None:
        """Write remaining events and stop the writer thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            batch, self._buffer = self._buffer, []
            if batch:
                self._queue.put(batch)
            self._queue.put(None)
        self._writer.join()

    def _run(self) -> None:
        while True:
            batch = self._queue.get()
            try:
                if batch is None:
                    return
                self._write(batch)
            except Exception as e:
                logger.warning(f"Failed to write {len(batch)} analytics events: {e}")
            finally:
                self._queue.task_done()

    def _write(self, batch: List[AnalyticsEvent]) -> None:
        by_experiment: Dict[str, List[AnalyticsEvent]] = defaultdict(list)
        for evt in batch:
            by_experiment[evt.experiment_id].append(evt)
        for experiment_id, events in by_experiment.items():
            append_events(events, experiment_id, base_dir=self.base_dir)


def append_events(
    events: List[AnalyticsEvent],
    experiment_id: str,
    base_dir: str = DEFAULT_EVENT_DIR,
) -> int:
    """
    Append analytics events to the store.

    Each call writes one new part file, so appending never re-reads or
    rewrites earlier events.

    Args:
        events: List of AnalyticsEvent
        experiment_id: Experiment identifier
        base_dir: Base directory for experiment data

    Returns:
        Number of events appended
    """
    if not events:
        return 0
    path = _part_path(experiment_id, base_dir)
    _ensure_dir(path.parent)

    df = pd.DataFrame([_event_to_row(e) for e in events])
    _write_table(df, path)
    logger.info(f"Appended {len(events)} events to {path}")
    return len(events)


def read_events(
    experiment_id: str,
    event_type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    base_dir: str = DEFAULT_EVENT_DIR,
) -> pd.DataFrame:
    """
    Read analytics events for an experiment.

    Args:
        experiment_id: Experiment identifier
        event_type: Optional filter by event type
        start_date: Optional start of time window (timezone-aware)
        end_date: Optional end of time window (timezone-aware)
        base_dir: Base directory for experiment data

    Returns:
        DataFrame with one row per event, ordered by occurrence time
    """
    parts = [_read_table(p) for p in _part_paths(experiment_id, base_dir)]
    if not parts:
        return pd.DataFrame()
    df = pd.concat(parts, ignore_index=True)
    if "occurred_at" in df.columns:
        df["occurred_at"] = pd.to_datetime(df["occurred_at"], utc=True)
        df = df.sort_values("occurred_at", kind="stable", ignore_index=True)
        if start_date:
            df = df[df["occurred_at"] >= pd.Timestamp(start_date)]
        if end_date:
            df = df[df["occurred_at"] <= pd.Timestamp(end_date)]
    if event_type and "event_type" in df.columns:
        df = df[df["event_type"] == event_type]
    return df


def get_event_summary(experiment_id: str, base_dir: str = DEFAULT_EVENT_DIR) -> dict:
    """
    Get summary counts for an experiment.

    Returns:
        Dict mapping event_type -> count, plus n_events
    """
    df = read_events(experiment_id, base_dir=base_dir)
    summary = {"n_events": len(df)}
    if not df.empty and "event_type" in df.columns:
        summary.update({k: int(v) for k, v in df["event_type"].value_counts().items()})
    return summary
