import base64
import io
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastavro import parse_schema, schemaless_writer

from streampost.core.contracts import DeliveryOutcome, DeliveryOutcomeKind, RawRecord
from streampost.core.exceptions import AuthError, SchemaLoadError
from streampost.decoders.avro import build_schema_definition
from streampost.providers.schema_provider import SchemaCache
from streampost.providers.token_provider import CredentialCache
from streampost.runtime import RuntimeContext


ITEM_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "Item",
    "fields": [{"name": "id", "type": "string"}],
}


def encode_avro(record: Dict[str, Any], schema: Dict[str, Any] = ITEM_SCHEMA) -> bytes:
    buf = io.BytesIO()
    schemaless_writer(buf, parse_schema(schema), record)
    return buf.getvalue()


def b64(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def kinesis_event_record(payload: bytes, seq: str = "1") -> Dict[str, Any]:
    return {
        "eventSource": "aws:kinesis",
        "eventID": f"shardId-000000000000:{seq}",
        "kinesis": {"data": b64(payload), "partitionKey": "pk", "sequenceNumber": seq},
    }


def raw_record(record: Dict[str, Any], seq: str = "1") -> RawRecord:
    return RawRecord(data=b64(encode_avro(record)), sequence_number=seq)


def http_response(
    status_code: int,
    *,
    json: Any = None,
    text: Optional[str] = None,
    method: str = "POST",
    url: str = "https://api.example.test/v0.1/records",
) -> httpx.Response:
    request = httpx.Request(method, url)
    if json is not None:
        return httpx.Response(status_code, json=json, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


class FakeTokenFetcher:
    def __init__(self, tokens: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.tokens = list(tokens or ["token-1", "token-2", "token-3"])
        self.error = error
        self.calls = 0

    def fetch_token(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tokens[min(self.calls, len(self.tokens)) - 1]


class FakeSchemaFetcher:
    def __init__(self, raw: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.raw = raw or ITEM_SCHEMA
        self.error = error
        self.calls = 0

    def fetch_schema(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return build_schema_definition(self.raw)


class FakeSender:
    def __init__(self, outcomes: Optional[List[DeliveryOutcome]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[tuple] = []

    def send(self, credential, batch):
        self.calls.append((credential, list(batch)))
        if self.outcomes:
            return self.outcomes.pop(0)
        return DeliveryOutcome(kind=DeliveryOutcomeKind.SUCCESS, status_code=200)


@pytest.fixture
def token_fetcher():
    return FakeTokenFetcher()


@pytest.fixture
def schema_fetcher():
    return FakeSchemaFetcher()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def runtime(token_fetcher, schema_fetcher, sender):
    rt = RuntimeContext(
        credentials=CredentialCache(token_fetcher),
        schemas=SchemaCache(schema_fetcher),
        delivery=sender,
    )
    yield rt
    rt.close()


@pytest.fixture
def failing_auth():
    return FakeTokenFetcher(error=AuthError("Token request was rejected", status_code=500))


@pytest.fixture
def failing_schema():
    return FakeSchemaFetcher(error=SchemaLoadError("Schema did not load"))
