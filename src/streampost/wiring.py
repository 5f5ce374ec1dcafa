from __future__ import annotations

import threading
from typing import Optional, Sequence

import httpx

from streampost.connectors.api.auth import OAuth2ClientCredentials
from streampost.connectors.api.delivery import DeliveryClient
from streampost.connectors.api.types import ApiAuth, ApiConnection
from streampost.core.contracts import DecodedRecord, DeliveryOutcome, SchemaDefinition
from streampost.models.settings import StreamPostSettings
from streampost.providers.schema_provider import HttpSchemaFetcher

# This module is the only layer allowed to read StreamPostSettings. Everything
# below is resolved on first use so a missing setting fails the invocation
# that needs it, not process start-up.


def build_oauth_auth(settings: StreamPostSettings) -> ApiAuth:
    return ApiAuth(
        oauth_url=settings.require("oauth_url"),
        oauth_token_path=settings.oauth_token_path,
        client_id=settings.require("oauth_key"),
        client_secret=settings.require("oauth_secret"),
    )


def build_delivery_connection(settings: StreamPostSettings) -> ApiConnection:
    return ApiConnection(
        url=settings.require("post_url"),
        timeout_seconds=settings.http_timeout_seconds,
        headers={"Accept": "application/json"},
    )


def build_http_client(settings: StreamPostSettings) -> httpx.Client:
    if settings.http_timeout_seconds is not None:
        return httpx.Client(timeout=settings.http_timeout_seconds)
    return httpx.Client()


class _Deferred:
    """Builds its target once, on first use, under a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._target = None

    def _build(self):  # pragma: no cover
        raise NotImplementedError

    def _get(self):
        with self._lock:
            if self._target is None:
                self._target = self._build()
            return self._target

    def close(self) -> None:
        with self._lock:
            target, self._target = self._target, None
        if target is not None:
            target.close()


class SettingsTokenFetcher(_Deferred):
    def __init__(self, settings: StreamPostSettings, *, client: Optional[httpx.Client] = None):
        super().__init__()
        self.settings = settings
        self._client = client

    def _build(self) -> OAuth2ClientCredentials:
        return OAuth2ClientCredentials(
            build_oauth_auth(self.settings),
            client=self._client or build_http_client(self.settings),
        )

    def fetch_token(self) -> str:
        return self._get().fetch_token()


class SettingsSchemaFetcher(_Deferred):
    def __init__(self, settings: StreamPostSettings, *, client: Optional[httpx.Client] = None):
        super().__init__()
        self.settings = settings
        self._client = client

    def _build(self) -> HttpSchemaFetcher:
        return HttpSchemaFetcher(
            self.settings.require("schema_url"),
            client=self._client or build_http_client(self.settings),
        )

    def fetch_schema(self) -> SchemaDefinition:
        return self._get().fetch_schema()


class SettingsDeliveryClient(_Deferred):
    def __init__(self, settings: StreamPostSettings, *, client: Optional[httpx.Client] = None):
        super().__init__()
        self.settings = settings
        self._client = client

    def _build(self) -> DeliveryClient:
        return DeliveryClient(build_delivery_connection(self.settings), client=self._client)

    def send(self, credential: str, batch: Sequence[DecodedRecord]) -> DeliveryOutcome:
        return self._get().send(credential, batch)
