"""REST client for the utility backend.

Every resource follows the same contract::

    GET    /api/<resource>       -> JSON array of records
    POST   /api/<resource>       -> created record
    PUT    /api/<resource>/<id>  -> updated record
    DELETE /api/<resource>/<id>  -> 2xx, body ignored

Any non-2xx answer is a failure. The message comes from the ``error`` field of
the body when there is one, otherwise it is ``"response not ok"``; a
``details`` mapping carries per-field messages for the form.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, Union

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from waterdesk.errors import FetchError, MutationError
from waterdesk.forms import ADD
from waterdesk.logging import get_logger
from waterdesk.resources import ResourceDefinition

logger = get_logger(__name__)

GENERIC_FAILURE = "response not ok"


class ErrorPayload(BaseModel):
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


def parse_error(response: httpx.Response) -> ErrorPayload:
    try:
        return ErrorPayload.model_validate(response.json())
    except (ValueError, PydanticValidationError):
        return ErrorPayload()


def _raise_for_status(
    response: httpx.Response, error_cls: Type[Union[FetchError, MutationError]], resource: str
) -> None:
    if response.is_success:
        return
    payload = parse_error(response)
    message = payload.error or GENERIC_FAILURE
    logger.warning("api_request_failed", resource=resource, status_code=response.status_code, error=message)
    if error_cls is MutationError:
        raise MutationError(message, resource=resource, status_code=response.status_code, details=payload.details)
    raise FetchError(message, resource=resource, status_code=response.status_code)


class ResourceClient:
    """CRUD calls for one resource, sharing the parent client's connection pool."""

    def __init__(self, http: httpx.Client, definition: ResourceDefinition):
        self.http = http
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.key

    def _item_path(self, record_id: Any) -> str:
        return f"{self.definition.endpoint}/{record_id}"

    def list(self) -> List[Dict[str, Any]]:
        try:
            response = self.http.get(self.definition.endpoint)
        except httpx.HTTPError as exc:
            logger.warning("api_unreachable", resource=self.name, error=str(exc))
            raise FetchError(f"Failed to fetch {self.definition.title.lower()}: {exc}", resource=self.name) from exc
        _raise_for_status(response, FetchError, self.name)
        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError("Backend returned invalid JSON", resource=self.name) from exc
        if not isinstance(data, list):
            raise FetchError("Backend returned a non-list collection", resource=self.name)
        logger.info("resource_fetched", resource=self.name, count=len(data))
        return data

    def _mutate(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = self.http.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("api_unreachable", resource=self.name, method=method, error=str(exc))
            raise MutationError(str(exc) or GENERIC_FAILURE, resource=self.name) from exc
        _raise_for_status(response, MutationError, self.name)
        return response

    def _record(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise MutationError("Backend returned invalid JSON", resource=self.name) from exc
        if not isinstance(data, dict):
            raise MutationError("Backend returned a non-object record", resource=self.name)
        return data

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = self._record(self._mutate("POST", self.definition.endpoint, payload))
        logger.info("record_created", resource=self.name, record_id=record.get(self.definition.id_field))
        return record

    def update(self, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = self._record(self._mutate("PUT", self._item_path(record_id), payload))
        logger.info("record_updated", resource=self.name, record_id=record_id)
        return record

    def delete(self, record_id: Any) -> None:
        self._mutate("DELETE", self._item_path(record_id))
        logger.info("record_deleted", resource=self.name, record_id=record_id)

    def submit(self, mode: str, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        if mode == ADD:
            return self.create(payload)
        return self.update(record_id, payload)


class ApiClient:
    """Owns the ``httpx.Client`` and hands out per-resource clients."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.http = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def resource(self, definition: ResourceDefinition) -> ResourceClient:
        return ResourceClient(self.http, definition)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
