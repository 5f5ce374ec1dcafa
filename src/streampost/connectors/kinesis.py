from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from streampost.core.contracts import RawRecord
from streampost.core.exceptions import DecodeError


def is_kinesis_record(record: Any) -> bool:
    return isinstance(record, Mapping) and isinstance(record.get("kinesis"), Mapping)


def raw_record_from_kinesis(record: Mapping[str, Any], *, index: Optional[int] = None) -> RawRecord:
    """Map one stream-source event record onto a RawRecord.

    Raises:
        DecodeError: If the record has no `kinesis.data` body.
    """
    kinesis: Mapping[str, Any] = record.get("kinesis") or {}
    data = kinesis.get("data")
    if not isinstance(data, str):
        raise DecodeError(
            "Kinesis record has no base64 'data' body",
            index=index,
            sequence_number=kinesis.get("sequenceNumber"),
        )
    return RawRecord(
        data=data,
        partition_key=kinesis.get("partitionKey"),
        sequence_number=kinesis.get("sequenceNumber"),
        event_id=record.get("eventID"),
        event_source_arn=record.get("eventSourceARN"),
    )


def event_records(event: Optional[Mapping[str, Any]]) -> Sequence[Dict[str, Any]]:
    if not event:
        return []
    records = event.get("Records") or []
    if not isinstance(records, list):
        raise ValueError("Event 'Records' must be a list")
    return records


def records_from_event(event: Optional[Mapping[str, Any]]) -> List[RawRecord]:
    return [raw_record_from_kinesis(r, index=i) for i, r in enumerate(event_records(event))]
