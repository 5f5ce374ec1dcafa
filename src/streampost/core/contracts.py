from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

DecodedRecord = Dict[str, Any]


@dataclass(frozen=True)
class RawRecord:
    """One encoded record as delivered by the stream source.

    `data` is the base64 text of the binary payload; the remaining fields are
    source metadata used for logging and error context only.
    """
    data: str
    partition_key: Optional[str] = None
    sequence_number: Optional[str] = None
    event_id: Optional[str] = None
    event_source_arn: Optional[str] = None


@dataclass(frozen=True)
class SchemaDefinition:
    """Schema as published by the schema endpoint plus its parsed Avro form."""
    raw: Dict[str, Any]
    parsed: Any
    name: Optional[str] = None

    @property
    def field_names(self) -> List[str]:
        return [f["name"] for f in self.raw.get("fields", []) if isinstance(f, dict) and "name" in f]


class DeliveryOutcomeKind(str, Enum):
    SUCCESS = "success"
    AUTH_EXPIRED = "auth_expired"
    TRANSPORT_ERROR = "transport_error"
    PARTIAL_DATA_ERROR = "partial_data_error"


@dataclass
class DeliveryOutcome:
    kind: DeliveryOutcomeKind
    status_code: Optional[int] = None
    errors: List[Any] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def delivered(self) -> bool:
        """True when the endpoint accepted the batch (with or without item errors)."""
        return self.kind in (DeliveryOutcomeKind.SUCCESS, DeliveryOutcomeKind.PARTIAL_DATA_ERROR)


class InvocationState(str, Enum):
    RESOLVING = "resolving"
    DECODING = "decoding"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class InvocationResult:
    """Terminal report of one invocation; produced exactly once per `process` call."""
    invocation_id: str
    state: InvocationState
    record_count: int = 0
    error: Optional[Exception] = None
    outcome: Optional[DeliveryOutcome] = None

    @property
    def ok(self) -> bool:
        return self.state == InvocationState.DONE

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def summary(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "invocation_id": self.invocation_id,
            "status": "success" if self.ok else "failed",
            "record_count": self.record_count,
        }
        if self.outcome is not None:
            data["outcome"] = self.outcome.kind.value
            data["status_code"] = self.outcome.status_code
            if self.outcome.errors:
                data["data_errors"] = len(self.outcome.errors)
        if self.error is not None:
            data["error"] = {"code": type(self.error).__name__, "message": str(self.error)}
        return data
