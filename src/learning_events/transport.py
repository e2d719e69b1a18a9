"""HTTP transport for the learning-events batch ingestion endpoint."""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from learning_events.models import BatchResult

logger = logging.getLogger(__name__)

BATCH_PATH = "/learning-events/batch"

BatchTransport = Callable[[list[Any]], Awaitable[BatchResult | Mapping[str, Any]]]


class TransportError(Exception):
    """Raised when a batch could not be handed to the ingestion endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _serialize(event: Any) -> Any:
    if isinstance(event, BaseModel):
        return event.model_dump(mode="json", by_alias=True, exclude_none=True)
    return event


class LearningEventApi:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )

    async def create_batch(self, events: list[Any]) -> BatchResult:
        """POST a batch and unwrap the ``{"success", "data"}`` envelope.

        Raises:
            TransportError: On network errors, non-2xx responses, an
                unsuccessful envelope or a body that does not parse.
        """
        body = {"events": [_serialize(e) for e in events]}
        logger.debug("POST %s with %d events", BATCH_PATH, len(events))
        try:
            resp = await self._client.post(BATCH_PATH, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Batch rejected with HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Batch request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError(
                "Batch response is not JSON", status_code=resp.status_code
            ) from exc

        if not isinstance(data, dict) or not data.get("success", False):
            message = data.get("message") if isinstance(data, dict) else None
            raise TransportError(
                f"Batch was not accepted: {message or 'unsuccessful response'}",
                status_code=resp.status_code,
            )

        try:
            return BatchResult.model_validate(data.get("data") or {})
        except ValidationError as exc:
            raise TransportError(
                "Batch response has an unexpected shape", status_code=resp.status_code
            ) from exc

    async def close(self) -> None:
        await self._client.aclose()
