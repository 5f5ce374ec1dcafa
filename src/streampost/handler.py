"""
Stream-source entry points.

`handler` follows the Lambda convention: return a summary on success, raise on
failure so the source retries the batch. `kinesis_handler` is the
completion-callback flavour; it reports to the callback exactly once.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from streampost.connectors.kinesis import event_records, is_kinesis_record, raw_record_from_kinesis
from streampost.core.contracts import InvocationResult
from streampost.core.exceptions import DecodeError
from streampost.core.logger import get_logger
from streampost.orchestrator import PipelineOrchestrator
from streampost.runtime import RuntimeContext

log = get_logger(__name__)

Callback = Callable[[Optional[BaseException]], None]


def _invocation_id(context: Any) -> Optional[str]:
    return getattr(context, "aws_request_id", None)


def process_records(
    records: Sequence[Mapping[str, Any]],
    context: Any = None,
    *,
    runtime: Optional[RuntimeContext] = None,
) -> InvocationResult:
    """Run the pipeline over stream-source records and return the result."""
    orchestrator = PipelineOrchestrator(runtime)
    try:
        raw = [raw_record_from_kinesis(r, index=i) for i, r in enumerate(records)]
    except DecodeError as e:
        log.error(f"Rejected malformed stream record: {e}")
        raise
    return orchestrator.process(raw, invocation_id=_invocation_id(context))


def kinesis_handler(
    records: Sequence[Mapping[str, Any]],
    context: Any,
    callback: Callback,
    *,
    runtime: Optional[RuntimeContext] = None,
) -> None:
    try:
        result = process_records(records, context, runtime=runtime)
        error: Optional[BaseException] = result.error
    except Exception as e:
        error = e
    callback(error)


def handler(event: Mapping[str, Any], context: Any = None, *, runtime: Optional[RuntimeContext] = None) -> Dict[str, Any]:
    records = event_records(event)
    if not records or not is_kinesis_record(records[0]):
        log.info("Event carries no Kinesis records; skipping")
        return {"status": "skipped", "record_count": len(records)}

    result = process_records(records, context, runtime=runtime)
    result.raise_for_error()
    return result.summary()
