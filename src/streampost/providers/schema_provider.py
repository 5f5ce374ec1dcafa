from __future__ import annotations

import json
from typing import Any, Optional, Protocol

import httpx

from streampost.core.cache import LockedValueCache, ValueCache
from streampost.core.contracts import SchemaDefinition
from streampost.core.exceptions import SchemaLoadError
from streampost.core.logger import get_logger
from streampost.decoders.avro import build_schema_definition

log = get_logger(__name__)


class SchemaFetcher(Protocol):
    def fetch_schema(self) -> SchemaDefinition:
        ...


class HttpSchemaFetcher:
    """Loads the schema from an endpoint answering `{"data": {"schema": "<json text>"}}`."""

    def __init__(self, schema_url: str, *, client: Optional[httpx.Client] = None):
        self.schema_url = schema_url
        self._client = client or httpx.Client()

    def fetch_schema(self) -> SchemaDefinition:
        try:
            resp = self._client.get(self.schema_url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise SchemaLoadError(f"Schema request to {self.schema_url} failed: {e}") from e

        if not resp.is_success:
            raise SchemaLoadError(f"Schema request to {self.schema_url} was rejected", status_code=resp.status_code)

        try:
            body: Any = resp.json()
        except ValueError as e:
            raise SchemaLoadError("Schema response is not JSON", status_code=resp.status_code) from e

        data = body.get("data") if isinstance(body, dict) else None
        schema_text = data.get("schema") if isinstance(data, dict) else None
        if not schema_text or not isinstance(schema_text, str):
            raise SchemaLoadError("Schema did not load: response has no data.schema field")

        try:
            raw = json.loads(schema_text)
        except ValueError as e:
            raise SchemaLoadError(f"Schema text is not valid JSON: {e}") from e

        try:
            return build_schema_definition(raw)
        except Exception as e:
            raise SchemaLoadError(f"Schema is not a valid Avro schema: {type(e).__name__}: {e}") from e

    def close(self) -> None:
        self._client.close()


class SchemaCache:
    """Process-wide schema, fetched at most once. Failed fetches cache nothing."""

    def __init__(self, fetcher: SchemaFetcher, *, cache: Optional[ValueCache[SchemaDefinition]] = None):
        self._fetcher = fetcher
        self._cache: ValueCache[SchemaDefinition] = cache or LockedValueCache()

    def get_schema(self) -> SchemaDefinition:
        fetched = False

        def _load() -> SchemaDefinition:
            nonlocal fetched
            fetched = True
            log.info("Loading schema...")
            try:
                schema = self._fetcher.fetch_schema()
            except SchemaLoadError:
                log.error("Schema did not load", exc_info=True)
                raise
            log.info(f"Successfully loaded schema {schema.name or ''}".rstrip())
            return schema

        schema = self._cache.get_or_load(_load)
        if not fetched:
            log.info("Already have schema")
        return schema

    def close(self) -> None:
        close = getattr(self._fetcher, "close", None)
        if close is not None:
            close()
