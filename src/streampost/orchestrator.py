from __future__ import annotations

import contextvars
import uuid
from concurrent.futures import FIRST_EXCEPTION, Future, wait
from typing import List, Optional, Sequence, Tuple

from streampost.core.contracts import (
    DecodedRecord,
    DeliveryOutcome,
    DeliveryOutcomeKind,
    InvocationResult,
    InvocationState,
    RawRecord,
    SchemaDefinition,
)
from streampost.core.events import EventBus, build_default_bus, publish_event, push_bus, reset_bus, timed_stage
from streampost.core.exceptions import (
    AuthExpiredError,
    EmptyBatchHandler,
    StreamPostException,
    TransportError,
)
from streampost.core.logger import get_logger, push_invocation_id, reset_invocation_id
from streampost.runtime import RuntimeContext, get_runtime

log = get_logger(__name__)


class PipelineOrchestrator:
    """
    Runs one invocation through resolve -> decode -> deliver.

    The credential and schema caches live on the injected RuntimeContext, so
    they persist across invocations while each `process` call stays
    independent. `process` never raises for pipeline failures; it returns an
    InvocationResult that is either DONE or FAILED.

    Example:
        >>> from streampost import PipelineOrchestrator
        >>> result = PipelineOrchestrator().process(records)
        >>> result.raise_for_error()
    """

    def __init__(self, runtime: Optional[RuntimeContext] = None, *, bus: Optional[EventBus] = None):
        self.runtime = runtime or get_runtime()
        self._bus = bus

    def process(self, records: Sequence[RawRecord], *, invocation_id: Optional[str] = None) -> InvocationResult:
        invocation_id = invocation_id or str(uuid.uuid4())
        token = push_invocation_id(invocation_id)

        bus = self._bus if self._bus is not None else build_default_bus(invocation_id=invocation_id)
        owns_bus = self._bus is None and bus is not None
        if owns_bus:
            bus.start()
        bus_token = push_bus(bus)
        try:
            log.info(f"Processing {len(records)} records")
            publish_event(stage="invocation", status="started", counts={"records": len(records)})
            result = self._run(list(records), invocation_id)
            publish_event(
                stage="invocation",
                status="completed" if result.ok else "failed",
                counts={"records": result.record_count},
                error={"code": type(result.error).__name__, "message": str(result.error)} if result.error else None,
            )
            return result
        finally:
            reset_bus(bus_token)
            if owns_bus:
                bus.shutdown()
            reset_invocation_id(token)

    def _run(self, records: List[RawRecord], invocation_id: str) -> InvocationResult:
        state = InvocationState.RESOLVING
        outcome: Optional[DeliveryOutcome] = None
        try:
            credential, schema = self._resolve()

            state = InvocationState.DECODING
            batch = self._decode(records, schema)

            state = InvocationState.DELIVERING
            outcome = self._deliver(credential, batch)
            self._raise_for_outcome(outcome)
        except StreamPostException as e:
            log.error(f"Invocation failed while {state.value}: {type(e).__name__}: {e}")
            return InvocationResult(invocation_id, InvocationState.FAILED, len(records), error=e, outcome=outcome)
        except Exception as e:
            log.exception(f"Unexpected failure while {state.value}")
            return InvocationResult(invocation_id, InvocationState.FAILED, len(records), error=e, outcome=outcome)

        return self._complete(invocation_id, len(records), outcome)

    # -----------------
    # Resolving
    # -----------------

    def _resolve_token(self) -> str:
        with timed_stage("resolve.token"):
            return self.runtime.credentials.get_token()

    def _resolve_schema(self) -> SchemaDefinition:
        with timed_stage("resolve.schema"):
            return self.runtime.schemas.get_schema()

    def _resolve(self) -> Tuple[str, SchemaDefinition]:
        """Resolve token and schema concurrently.

        The first failure is raised as soon as it is known. The other task is
        left to finish on its own so a cache write is never cut short.
        """
        executor = self.runtime.executor
        # Each task needs its own context copy; a Context can only be entered by one thread at a time
        token_f: Future = executor.submit(contextvars.copy_context().run, self._resolve_token)
        schema_f: Future = executor.submit(contextvars.copy_context().run, self._resolve_schema)

        done, _ = wait([token_f, schema_f], return_when=FIRST_EXCEPTION)
        for fut in (token_f, schema_f):
            if fut in done and fut.exception() is not None:
                raise fut.exception()

        return token_f.result(), schema_f.result()

    # -----------------
    # Decoding
    # -----------------

    def _decode(self, records: List[RawRecord], schema: SchemaDefinition) -> List[DecodedRecord]:
        if not records:
            EmptyBatchHandler(policy=self.runtime.empty_batch_policy, logger=log).handle(
                reason="Invocation carried no records",
            )
        with timed_stage("decode", counts={"records": len(records)}):
            batch = self.runtime.decoder.decode_batch(records, schema)
        log.info(f"Decoded {len(batch)} record(s)")
        return batch

    # -----------------
    # Delivering
    # -----------------

    def _deliver(self, credential: str, batch: List[DecodedRecord]) -> DeliveryOutcome:
        log.info("Posting records")
        with timed_stage("deliver", counts={"records": len(batch)}):
            return self.runtime.delivery.send(credential, batch)

    def _raise_for_outcome(self, outcome: DeliveryOutcome) -> None:
        if outcome.kind == DeliveryOutcomeKind.AUTH_EXPIRED:
            # Must land before anyone can read the stale token again
            self.runtime.credentials.invalidate()
            raise outcome.error or AuthExpiredError("Delivery endpoint rejected the access token", outcome.status_code)

        if outcome.kind == DeliveryOutcomeKind.TRANSPORT_ERROR:
            raise outcome.error or TransportError("Delivery failed", outcome.status_code)

    def _complete(self, invocation_id: str, record_count: int, outcome: DeliveryOutcome) -> InvocationResult:
        if outcome.kind == DeliveryOutcomeKind.PARTIAL_DATA_ERROR:
            log.warning(f"Batch accepted with {len(outcome.errors)} data error(s); invocation succeeds")
        log.info(f"Invocation completed: {record_count} record(s) delivered")
        return InvocationResult(invocation_id, InvocationState.DONE, record_count, outcome=outcome)
