"""
Example: replaying a captured stream event outside the stream source.

Reads the NYPL_* settings from the environment (or a .env file), then pushes
one event through the same handler the stream source would call.
"""

import json

from streampost import InvocationState, RawRecord, handler
from streampost.orchestrator import PipelineOrchestrator

# =============================================================================
# Example 1: Lambda-style handler with a captured event
# =============================================================================
with open("examples/captured_event.json") as f:
    event = json.load(f)

summary = handler(event)
print(json.dumps(summary, indent=2, default=str))


# =============================================================================
# Example 2: Driving the orchestrator directly and inspecting the result
# =============================================================================
records = [
    RawRecord(data=r["kinesis"]["data"], sequence_number=r["kinesis"].get("sequenceNumber"))
    for r in event["Records"]
]

result = PipelineOrchestrator().process(records, invocation_id="replay-001")
if result.state is InvocationState.FAILED:
    print(f"Replay failed: {result.error}")
else:
    print(f"Delivered {result.record_count} record(s): {result.outcome.kind.value}")
