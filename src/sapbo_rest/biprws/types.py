"""Response types for the BusinessObjects REST API.

Read endpoints are returned as flattened tables, so only the small fixed
envelopes are modelled here.
"""

from pydantic import BaseModel, ConfigDict


class UploadResult(BaseModel):
    """Success envelope returned by spreadsheet uploads and updates.

    The server answers ``{"success": {"message": ..., "id": ...}}``.
    """

    model_config = ConfigDict(extra="allow")

    message: str = ""
    id: int | None = None


class ErrorBody(BaseModel):
    """Error envelope returned with non-2xx responses."""

    model_config = ConfigDict(extra="allow")

    error_code: str | None = None
    message: str | None = None
