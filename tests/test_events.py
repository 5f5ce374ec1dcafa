import pytest

from streampost.core.events import (
    EventBus,
    MemoryObserver,
    build_default_bus,
    publish_event,
    push_bus,
    reset_bus,
    timed_stage,
)


def test_timed_stage_publishes_started_and_completed():
    observer = MemoryObserver()
    bus = EventBus(invocation_id="inv-1", observers=[observer])
    bus.start()
    token = push_bus(bus)
    try:
        with timed_stage("decode", counts={"records": 2}):
            pass
    finally:
        reset_bus(token)
        bus.shutdown()

    assert [(e.stage, e.status) for e in observer.events] == [("decode", "started"), ("decode", "completed")]
    assert observer.events[1].duration_ms is not None
    assert observer.events[1].seq_no == 2


def test_timed_stage_publishes_failure_and_reraises():
    observer = MemoryObserver()
    bus = EventBus(invocation_id="inv-1", observers=[observer])
    bus.start()
    token = push_bus(bus)
    try:
        with pytest.raises(ValueError):
            with timed_stage("deliver"):
                raise ValueError("boom")
    finally:
        reset_bus(token)
        bus.shutdown()

    failed = observer.events[-1]
    assert failed.status == "failed"
    assert failed.error == {"code": "ValueError", "message": "boom"}


def test_publish_without_bus_is_a_no_op():
    publish_event(stage="invocation", status="started")


def test_default_bus_is_disabled_unless_enabled(monkeypatch):
    monkeypatch.delenv("STREAMPOST_EVENTS_ENABLED", raising=False)
    assert build_default_bus(invocation_id="x") is None

    monkeypatch.setenv("STREAMPOST_EVENTS_ENABLED", "true")
    monkeypatch.setenv("STREAMPOST_EVENTS_TRANSPORTS", "memory")
    bus = build_default_bus(invocation_id="x")
    assert isinstance(bus, EventBus)
