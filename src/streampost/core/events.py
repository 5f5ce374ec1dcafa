from __future__ import annotations

import contextvars
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

from streampost.core.logger import get_logger

DEFAULT_SCHEMA_VERSION = "1.0"

log = get_logger(__name__)

# Bus of the invocation running in the current context; copied into worker
# threads together with the logging context.
_CURRENT_BUS: contextvars.ContextVar[Optional["EventBus"]] = contextvars.ContextVar("event_bus", default=None)


def push_bus(bus: Optional["EventBus"]) -> contextvars.Token:
    return _CURRENT_BUS.set(bus)


def reset_bus(token: contextvars.Token) -> None:
    _CURRENT_BUS.reset(token)


def publish_event(
    *,
    stage: str,
    status: str,
    duration_ms: Optional[int] = None,
    counts: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
) -> None:
    """Publish to the current invocation's bus, if one is set.

    Bus failures are logged at debug level and never reach the pipeline.
    """
    bus = _CURRENT_BUS.get()
    if bus is None:
        return
    try:
        bus.publish(
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            counts=counts,
            details=details,
            error=error,
        )
    except Exception:
        log.debug("Event publish failed", exc_info=True)


class timed_stage:
    """Context manager that publishes started/completed/failed events for a stage.

    Usage:
        with timed_stage("decode", counts={"records": 10}):
            records = decoder.decode_batch(raw, schema)
    """

    def __init__(
        self,
        stage: str,
        *,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.stage = stage
        self.counts = counts
        self.details = details
        self._start_ms: Optional[int] = None

    def __enter__(self) -> "timed_stage":
        self._start_ms = int(time.time() * 1000)
        publish_event(stage=self.stage, status="started", details=self.details)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # type: ignore
        duration_ms = int(time.time() * 1000) - (self._start_ms or 0)
        if exc_type is not None:
            publish_event(
                stage=self.stage,
                status="failed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
                error={"code": exc_type.__name__, "message": str(exc_val)},
            )
        else:
            publish_event(
                stage=self.stage,
                status="completed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
            )
        return False


@dataclass
class FunctionalEvent:
    """Structured lifecycle event for one invocation; separate from debug logging."""

    schema_version: str = DEFAULT_SCHEMA_VERSION
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    seq_no: int = 0
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    invocation_id: str = "-"
    stage: str = "-"   # invocation, resolve.token, resolve.schema, decode, deliver
    status: str = "-"  # started|completed|failed|skipped

    duration_ms: Optional[int] = None
    counts: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None


class EventObserver:
    """Observer interface for handling functional events."""

    def handle(self, event: FunctionalEvent) -> None:  # pragma: no cover
        raise NotImplementedError

    def flush(self) -> None:
        pass


class StdoutObserver(EventObserver):
    """Emit concise one-line progress to stdout (not via the logger)."""

    def handle(self, event: FunctionalEvent) -> None:
        duration = f" duration_ms={event.duration_ms}" if event.duration_ms is not None else ""
        msg = f"{event.ts} | inv={event.invocation_id} | {event.stage} {event.status}{duration}"
        if event.counts:
            msg += f" | counts={event.counts}"
        if event.details:
            brief = {k: event.details[k] for k in list(event.details.keys())[:4]}
            msg += f" | details={brief}"
        if event.error:
            brief_err = {k: event.error.get(k) for k in ("code", "message") if k in event.error}
            msg += f" | error={brief_err}"
        print(msg)


class MemoryObserver(EventObserver):
    """Keeps every event in a list; handy for diagnostics and tests."""

    def __init__(self) -> None:
        self.events: List[FunctionalEvent] = []
        self._lock = threading.Lock()

    def handle(self, event: FunctionalEvent) -> None:
        with self._lock:
            self.events.append(event)

    def stages(self, status: Optional[str] = None) -> List[str]:
        with self._lock:
            return [e.stage for e in self.events if status is None or e.status == status]


class EventBus:
    """Event bus with a background dispatcher and a bounded queue.

    Tracks duration automatically for paired started/completed events.
    """

    def __init__(
        self,
        *,
        invocation_id: str,
        observers: Optional[List[EventObserver]] = None,
        queue_size: int = 10_000,
    ) -> None:
        self.invocation_id = str(invocation_id)
        self._observers: List[EventObserver] = observers or []
        self._q: Queue[FunctionalEvent] = Queue(maxsize=max(1, queue_size))
        self._seq_no = 0
        self._seq_lock = threading.Lock()
        self._running = False
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0
        self._stage_start_times: Dict[str, int] = {}

    def _deliver(self, evt: FunctionalEvent) -> None:
        for obs in self._observers:
            try:
                obs.handle(evt)
            except Exception:
                log.debug("Event observer %s failed", type(obs).__name__, exc_info=True)

    def _dispatch_loop(self) -> None:
        while self._running:
            try:
                evt = self._q.get(timeout=0.2)
            except Empty:
                continue
            self._deliver(evt)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = threading.Thread(target=self._dispatch_loop, name="streampost_event_bus", daemon=True)
        self._worker.start()

    def shutdown(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        while True:
            try:
                evt = self._q.get_nowait()
            except Empty:
                break
            self._deliver(evt)
        for obs in self._observers:
            try:
                obs.flush()
            except Exception:
                log.debug("Event observer flush failed", exc_info=True)
        self._worker = None

    def publish(
        self,
        *,
        stage: str,
        status: str,
        duration_ms: Optional[int] = None,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> None:
        now_ms = int(time.time() * 1000)

        with self._seq_lock:
            if status == "started":
                self._stage_start_times[stage] = now_ms
            elif status in ("completed", "failed") and duration_ms is None:
                start_ms = self._stage_start_times.pop(stage, None)
                if start_ms is not None:
                    duration_ms = now_ms - start_ms
            self._seq_no += 1
            seq_no = self._seq_no

        evt = FunctionalEvent(
            seq_no=seq_no,
            invocation_id=self.invocation_id,
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            counts=counts,
            details=details,
            error=error,
        )
        try:
            self._q.put_nowait(evt)
        except Full:
            # Drop rather than block the pipeline
            self._dropped += 1
            if self._dropped % 100 == 1:
                log.warning(f"Event queue full; dropped {self._dropped} event(s)")


def _env_flag(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val not in (None, "") else default


def build_default_bus(*, invocation_id: str) -> Optional[EventBus]:
    """Construct an EventBus from environment variables.

    STREAMPOST_EVENTS_ENABLED: "true" | "false" (default: "false")
    STREAMPOST_EVENTS_TRANSPORTS: comma list of "stdout", "memory" (default: "stdout")
    STREAMPOST_EVENTS_QUEUE_SIZE: int (default: 10000)
    """
    enabled = _env_flag("STREAMPOST_EVENTS_ENABLED", "false").lower() == "true"
    if not enabled:
        return None

    transports = [s.strip() for s in _env_flag("STREAMPOST_EVENTS_TRANSPORTS", "stdout").split(",") if s.strip()]
    try:
        q_size = int(_env_flag("STREAMPOST_EVENTS_QUEUE_SIZE", "10000"))
    except ValueError:
        q_size = 10000

    observers: List[EventObserver] = []
    if "stdout" in transports:
        observers.append(StdoutObserver())
    if "memory" in transports:
        observers.append(MemoryObserver())

    return EventBus(invocation_id=invocation_id, observers=observers, queue_size=q_size)
