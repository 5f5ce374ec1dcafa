from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol, Sequence

from streampost.core.contracts import DecodedRecord, DeliveryOutcome
from streampost.core.exceptions import EmptyBatchPolicy
from streampost.core.logger import configure_root_logger, get_logger
from streampost.decoders.avro import AvroRecordDecoder
from streampost.models.settings import StreamPostSettings
from streampost.providers.schema_provider import SchemaCache
from streampost.providers.token_provider import CredentialCache
from streampost.wiring import SettingsDeliveryClient, SettingsSchemaFetcher, SettingsTokenFetcher

log = get_logger(__name__)


class Sender(Protocol):
    def send(self, credential: str, batch: Sequence[DecodedRecord]) -> DeliveryOutcome:
        ...


class RuntimeContext:
    """Process-wide state shared by every invocation.

    Owns the credential and schema caches so they outlive single invocations,
    plus the executor used to resolve both concurrently. Tests build one
    directly with fakes; production code uses `get_runtime()`.
    """

    def __init__(
        self,
        *,
        credentials: CredentialCache,
        schemas: SchemaCache,
        delivery: Sender,
        decoder: Optional[AvroRecordDecoder] = None,
        empty_batch_policy: EmptyBatchPolicy = EmptyBatchPolicy.WARN,
        executor: Optional[ThreadPoolExecutor] = None,
        settings: Optional[StreamPostSettings] = None,
    ):
        self.credentials = credentials
        self.schemas = schemas
        self.delivery = delivery
        self.decoder = decoder or AvroRecordDecoder()
        self.empty_batch_policy = empty_batch_policy
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="streampost-resolve")
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Optional[StreamPostSettings] = None) -> "RuntimeContext":
        settings = settings or StreamPostSettings()
        return cls(
            credentials=CredentialCache(SettingsTokenFetcher(settings)),
            schemas=SchemaCache(SettingsSchemaFetcher(settings)),
            delivery=SettingsDeliveryClient(settings),
            empty_batch_policy=settings.empty_batch_policy,
            settings=settings,
        )

    def close(self) -> None:
        # Resolution tasks that lost a race may still be finishing a cache write
        self.executor.shutdown(wait=False)
        self.credentials.close()
        self.schemas.close()
        close = getattr(self.delivery, "close", None)
        if close is not None:
            close()


_RUNTIME: Optional[RuntimeContext] = None
_RUNTIME_LOCK = threading.Lock()


def get_runtime() -> RuntimeContext:
    global _RUNTIME
    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            settings = StreamPostSettings()
            configure_root_logger(settings.log_level, settings.log_format)
            log.info("Loading stream poster")
            _RUNTIME = RuntimeContext.from_settings(settings)
        return _RUNTIME


def set_runtime(runtime: Optional[RuntimeContext]) -> None:
    """Replace the process-wide runtime (tests, embedding applications)."""
    global _RUNTIME
    with _RUNTIME_LOCK:
        previous = _RUNTIME
        _RUNTIME = runtime
    if previous is not None and previous is not runtime:
        previous.close()
