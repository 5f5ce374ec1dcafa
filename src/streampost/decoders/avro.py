"""
Avro binary decoding for raw stream records.

Records carry a single schemaless Avro datum (no container header), base64
encoded by the stream source. Decoding is strict: short reads, undecodable
text and trailing bytes after the datum all fail the record.
"""

from __future__ import annotations

import base64
import binascii
import io
from typing import Any, Dict, List, Optional, Sequence

from fastavro import parse_schema, schemaless_reader

from streampost.core.contracts import DecodedRecord, RawRecord, SchemaDefinition
from streampost.core.exceptions import DecodeError
from streampost.core.logger import get_logger

log = get_logger(__name__)


class _StrictBuffer(io.BytesIO):
    """BytesIO that raises EOFError instead of returning a short read."""

    def read(self, size: Optional[int] = -1) -> bytes:
        data = super().read(size)
        if size is not None and size >= 0 and len(data) < size:
            raise EOFError(f"Expected {size} byte(s), got {len(data)}")
        return data


def build_schema_definition(raw: Dict[str, Any]) -> SchemaDefinition:
    """Parse a schema mapping into a SchemaDefinition.

    Raises whatever fastavro raises for an invalid schema; callers wrap it.
    """
    parsed = parse_schema(raw)
    return SchemaDefinition(raw=raw, parsed=parsed, name=raw.get("name") if isinstance(raw, dict) else None)


class AvroRecordDecoder:
    def decode(self, record: RawRecord, schema: SchemaDefinition, *, index: Optional[int] = None) -> DecodedRecord:
        try:
            payload = base64.b64decode(record.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(
                f"Record body is not valid base64: {e}",
                index=index,
                sequence_number=record.sequence_number,
            ) from e

        buf = _StrictBuffer(payload)
        try:
            value = schemaless_reader(buf, schema.parsed)
        except Exception as e:
            raise DecodeError(
                f"Malformed Avro payload: {type(e).__name__}: {e}",
                index=index,
                sequence_number=record.sequence_number,
            ) from e

        consumed = buf.tell()
        if consumed != len(payload):
            raise DecodeError(
                f"Trailing data after Avro datum ({len(payload) - consumed} byte(s))",
                index=index,
                sequence_number=record.sequence_number,
            )
        return value

    def decode_batch(self, records: Sequence[RawRecord], schema: SchemaDefinition) -> List[DecodedRecord]:
        """Decode every record in order; the first failure aborts the batch."""
        decoded: List[DecodedRecord] = []
        for index, record in enumerate(records):
            log.debug(f"Parsing record {index} (sequence={record.sequence_number})")
            decoded.append(self.decode(record, schema, index=index))
        return decoded
