"""streampost.

Stream-ingestion bridge: decodes Avro-encoded stream records and posts them,
batched, to a downstream HTTP API with a cached OAuth2 bearer token.

Public API for stream-source handlers and embedding applications.
"""

from streampost.core.contracts import DeliveryOutcome, DeliveryOutcomeKind, InvocationResult, InvocationState, RawRecord
from streampost.handler import handler, kinesis_handler
from streampost.orchestrator import PipelineOrchestrator
from streampost.runtime import RuntimeContext, get_runtime, set_runtime

__version__ = "0.1.0"

__all__ = [
    "DeliveryOutcome",
    "DeliveryOutcomeKind",
    "InvocationResult",
    "InvocationState",
    "PipelineOrchestrator",
    "RawRecord",
    "RuntimeContext",
    "get_runtime",
    "handler",
    "kinesis_handler",
    "set_runtime",
]
