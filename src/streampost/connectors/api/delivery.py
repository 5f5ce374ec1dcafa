from __future__ import annotations

import base64
import datetime
import decimal
import math
import uuid
from typing import Any, List, Optional, Sequence

import httpx

from streampost.connectors.api.auth import bearer_headers
from streampost.connectors.api.types import ApiConnection
from streampost.core.contracts import DecodedRecord, DeliveryOutcome, DeliveryOutcomeKind
from streampost.core.exceptions import AuthExpiredError, PartialDataError, TransportError
from streampost.core.logger import get_logger

log = get_logger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert Avro-decoded values into something `json` can encode."""
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        # NaN and infinities have no JSON form; they go out as null
        return None
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (decimal.Decimal, uuid.UUID)):
        return str(value)
    return value


class DeliveryClient:
    """Posts one decoded batch per call and classifies the response.

    Never retries; what to do with a failed outcome is the caller's decision.
    """

    def __init__(self, connection: ApiConnection, *, client: Optional[httpx.Client] = None):
        self.connection = connection
        if client is None:
            kwargs: dict[str, Any] = {"headers": dict(connection.headers)}
            if connection.timeout_seconds is not None:
                kwargs["timeout"] = connection.timeout_seconds
            client = httpx.Client(**kwargs)
        self._client = client

    def send(self, credential: str, batch: Sequence[DecodedRecord]) -> DeliveryOutcome:
        url = self.connection.url
        log.info(f"Posting {len(batch)} record(s) to {url}")
        headers = bearer_headers(credential)
        try:
            resp = self._client.post(url, json=to_jsonable(list(batch)), headers=headers)
        except httpx.HTTPError as e:
            log.error(f"POST to {url} failed: {type(e).__name__}: {e}")
            return DeliveryOutcome(
                kind=DeliveryOutcomeKind.TRANSPORT_ERROR,
                error=TransportError(f"POST to {url} failed: {e}"),
            )
        except (TypeError, ValueError) as e:
            log.error(f"Batch for {url} could not be encoded as JSON: {type(e).__name__}: {e}")
            return DeliveryOutcome(
                kind=DeliveryOutcomeKind.TRANSPORT_ERROR,
                error=TransportError(f"Batch for {url} could not be encoded as JSON: {e}"),
            )

        status = resp.status_code
        log.info(f"Response: {status}")

        if status == 401:
            log.error(f"POST to {url} rejected the access token (status={status})")
            return DeliveryOutcome(
                kind=DeliveryOutcomeKind.AUTH_EXPIRED,
                status_code=status,
                error=AuthExpiredError("Delivery endpoint rejected the access token", status_code=status),
            )

        if not resp.is_success:
            log.error(f"POST to {url} failed (status={status}): {resp.text[:500]}")
            return DeliveryOutcome(
                kind=DeliveryOutcomeKind.TRANSPORT_ERROR,
                status_code=status,
                error=TransportError(f"POST to {url} failed", status_code=status),
            )

        errors = self._data_errors(resp)
        if errors:
            log.warning(f"Data error: {len(errors)} item error(s) reported: {errors}")
            return DeliveryOutcome(
                kind=DeliveryOutcomeKind.PARTIAL_DATA_ERROR,
                status_code=status,
                errors=errors,
                error=PartialDataError(errors),
            )

        log.info("POST Success")
        return DeliveryOutcome(kind=DeliveryOutcomeKind.SUCCESS, status_code=status)

    @staticmethod
    def _data_errors(resp: httpx.Response) -> List[Any]:
        if not resp.content:
            return []
        try:
            body: Any = resp.json()
        except ValueError:
            log.debug("Delivery response body is not JSON; treating as no data errors")
            return []
        if not isinstance(body, dict):
            return []
        errors = body.get("errors")
        if isinstance(errors, list):
            return errors
        return []

    def close(self) -> None:
        self._client.close()
