import threading

import pytest

from conftest import FakeSchemaFetcher, FakeSender, FakeTokenFetcher, raw_record
from streampost.core.contracts import DeliveryOutcome, DeliveryOutcomeKind, InvocationState, RawRecord
from streampost.core.events import EventBus, MemoryObserver
from streampost.core.exceptions import (
    AuthError,
    AuthExpiredError,
    DecodeError,
    EmptyBatchError,
    EmptyBatchPolicy,
    PartialDataError,
    SchemaLoadError,
    TransportError,
)
from streampost.orchestrator import PipelineOrchestrator
from streampost.providers.schema_provider import SchemaCache
from streampost.providers.token_provider import CredentialCache
from streampost.runtime import RuntimeContext


def _records(*ids):
    return [raw_record({"id": i}, seq=str(n)) for n, i in enumerate(ids)]


def _runtime(token_fetcher=None, schema_fetcher=None, sender=None, **kwargs):
    return RuntimeContext(
        credentials=CredentialCache(token_fetcher or FakeTokenFetcher()),
        schemas=SchemaCache(schema_fetcher or FakeSchemaFetcher()),
        delivery=sender or FakeSender(),
        **kwargs,
    )


def test_happy_path_delivers_decoded_batch_in_order(runtime, sender):
    result = PipelineOrchestrator(runtime).process(_records("a", "b", "c"), invocation_id="inv-1")

    assert result.ok
    assert result.state == InvocationState.DONE
    assert result.invocation_id == "inv-1"
    assert result.record_count == 3
    assert result.error is None
    assert result.outcome.kind == DeliveryOutcomeKind.SUCCESS
    assert sender.calls == [("token-1", [{"id": "a"}, {"id": "b"}, {"id": "c"}])]


def test_caches_are_reused_across_invocations(runtime, token_fetcher, schema_fetcher, sender):
    orchestrator = PipelineOrchestrator(runtime)

    orchestrator.process(_records("a"))
    orchestrator.process(_records("b"))

    assert token_fetcher.calls == 1
    assert schema_fetcher.calls == 1
    assert len(sender.calls) == 2


def test_auth_failure_fails_invocation_without_delivery(failing_auth):
    sender = FakeSender()
    runtime = _runtime(token_fetcher=failing_auth, sender=sender)

    result = PipelineOrchestrator(runtime).process(_records("a"))

    assert result.state == InvocationState.FAILED
    assert isinstance(result.error, AuthError)
    assert sender.calls == []
    runtime.close()


def test_schema_failure_fails_invocation_and_is_retried_next_time(failing_schema):
    sender = FakeSender()
    runtime = _runtime(schema_fetcher=failing_schema, sender=sender)
    orchestrator = PipelineOrchestrator(runtime)

    first = orchestrator.process(_records("a"))
    failing_schema.error = None
    second = orchestrator.process(_records("a"))

    assert isinstance(first.error, SchemaLoadError)
    assert second.ok
    assert failing_schema.calls == 2
    assert len(sender.calls) == 1
    runtime.close()


def test_resolution_failure_does_not_wait_for_the_other_task():
    release = threading.Event()

    class SlowSchemaFetcher(FakeSchemaFetcher):
        def fetch_schema(self):
            release.wait(timeout=5)
            return super().fetch_schema()

    schema_fetcher = SlowSchemaFetcher()
    runtime = _runtime(
        token_fetcher=FakeTokenFetcher(error=AuthError("rejected", status_code=500)),
        schema_fetcher=schema_fetcher,
    )

    result = PipelineOrchestrator(runtime).process(_records("a"))

    assert isinstance(result.error, AuthError)
    assert not release.is_set()
    # The schema task is left to finish and populate the cache
    release.set()
    runtime.executor.shutdown(wait=True)
    assert schema_fetcher.calls == 1
    assert runtime.schemas.get_schema().field_names == ["id"]


def test_malformed_record_fails_invocation_without_delivery(runtime, sender):
    bad = RawRecord(data="%%%")
    result = PipelineOrchestrator(runtime).process([*_records("a"), bad])

    assert result.state == InvocationState.FAILED
    assert isinstance(result.error, DecodeError)
    assert result.error.index == 1
    assert sender.calls == []


def test_401_invalidates_token_and_next_invocation_reauthenticates(token_fetcher, schema_fetcher):
    sender = FakeSender(
        outcomes=[
            DeliveryOutcome(
                kind=DeliveryOutcomeKind.AUTH_EXPIRED,
                status_code=401,
                error=AuthExpiredError("Delivery endpoint rejected the access token", status_code=401),
            ),
        ]
    )
    runtime = _runtime(token_fetcher, schema_fetcher, sender)
    orchestrator = PipelineOrchestrator(runtime)

    failed = orchestrator.process(_records("a"))

    assert failed.state == InvocationState.FAILED
    assert isinstance(failed.error, AuthExpiredError)
    assert failed.outcome.status_code == 401
    assert not runtime.credentials.has_token
    # No retry inside the failed invocation
    assert len(sender.calls) == 1

    succeeded = orchestrator.process(_records("a"))

    assert succeeded.ok
    assert token_fetcher.calls == 2
    assert sender.calls[1][0] == "token-2"
    runtime.close()


def test_transport_error_fails_invocation_and_keeps_token(token_fetcher):
    sender = FakeSender(
        outcomes=[
            DeliveryOutcome(
                kind=DeliveryOutcomeKind.TRANSPORT_ERROR,
                status_code=500,
                error=TransportError("POST failed", status_code=500),
            )
        ]
    )
    runtime = _runtime(token_fetcher=token_fetcher, sender=sender)

    result = PipelineOrchestrator(runtime).process(_records("a"))

    assert isinstance(result.error, TransportError)
    assert runtime.credentials.has_token
    runtime.close()


def test_partial_data_error_completes_invocation_and_is_logged(caplog):
    caplog.set_level("INFO", logger="streampost")
    errors = [{"id": "b", "message": "bad"}]
    sender = FakeSender(
        outcomes=[
            DeliveryOutcome(
                kind=DeliveryOutcomeKind.PARTIAL_DATA_ERROR,
                status_code=200,
                errors=errors,
                error=PartialDataError(errors),
            )
        ]
    )
    runtime = _runtime(sender=sender)

    result = PipelineOrchestrator(runtime).process(_records("a", "b"))

    assert result.ok
    assert result.error is None
    assert result.outcome.errors == errors
    assert any("data error" in r.getMessage() for r in caplog.records)
    runtime.close()


def test_empty_batch_warn_policy_delivers_empty_batch(caplog):
    caplog.set_level("INFO", logger="streampost")
    sender = FakeSender()
    runtime = _runtime(sender=sender, empty_batch_policy=EmptyBatchPolicy.WARN)

    result = PipelineOrchestrator(runtime).process([])

    assert result.ok
    assert sender.calls == [("token-1", [])]
    assert any(r.levelname == "WARNING" and "no records" in r.getMessage() for r in caplog.records)
    runtime.close()


def test_empty_batch_fail_policy_fails_invocation():
    sender = FakeSender()
    runtime = _runtime(sender=sender, empty_batch_policy=EmptyBatchPolicy.FAIL)

    result = PipelineOrchestrator(runtime).process([])

    assert isinstance(result.error, EmptyBatchError)
    assert sender.calls == []
    runtime.close()


def test_unexpected_exception_is_reported_not_raised(runtime):
    class Exploding:
        def send(self, credential, batch):
            raise RuntimeError("unexpected")

    runtime.delivery = Exploding()

    result = PipelineOrchestrator(runtime).process(_records("a"))

    assert result.state == InvocationState.FAILED
    assert isinstance(result.error, RuntimeError)


def test_result_raise_for_error(failing_auth):
    runtime = _runtime(token_fetcher=failing_auth)
    result = PipelineOrchestrator(runtime).process(_records("a"))

    with pytest.raises(AuthError):
        result.raise_for_error()

    summary = result.summary()
    assert summary["status"] == "failed"
    assert summary["error"]["code"] == "AuthError"
    runtime.close()


def test_lifecycle_events_are_published(runtime):
    observer = MemoryObserver()
    bus = EventBus(invocation_id="inv-9", observers=[observer])
    bus.start()

    PipelineOrchestrator(runtime, bus=bus).process(_records("a"), invocation_id="inv-9")
    bus.shutdown()

    completed = observer.stages(status="completed")
    for stage in ("resolve.token", "resolve.schema", "decode", "deliver", "invocation"):
        assert stage in completed
    assert all(e.invocation_id == "inv-9" for e in observer.events)
