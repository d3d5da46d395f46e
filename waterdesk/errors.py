"""Error taxonomy shared by the console screens."""

from __future__ import annotations

from typing import Any, Dict, Optional


class WaterDeskError(Exception):
    """Base class for every error raised by waterdesk."""


class FetchError(WaterDeskError):
    """A list load failed (network error or non-2xx response)."""

    def __init__(self, message: str, *, resource: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.status_code = status_code


class ValidationError(WaterDeskError):
    """Client-side field rules rejected a draft."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()) or "invalid draft")
        self.errors = dict(errors)


class MutationError(WaterDeskError):
    """A create, update or delete call was rejected by the backend."""

    def __init__(
        self,
        message: str,
        *,
        resource: str = "",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.status_code = status_code
        self.details = {str(k): str(v) for k, v in (details or {}).items()}


class RecordNotFoundError(WaterDeskError):
    def __init__(self, record_id: Any):
        super().__init__(f"No record with id {record_id!r}")
        self.record_id = record_id


class DuplicateRecordError(WaterDeskError):
    def __init__(self, record_id: Any):
        super().__init__(f"A record with id {record_id!r} already exists")
        self.record_id = record_id
