"""SAP BusinessObjects REST API client package.

Provides an HTTP client for the BusinessObjects RESTful web services
(``/biprws``) with explicit logon sessions. Read endpoints return
flattened tables; uploads return the server's success envelope.

Exports:
    SapBoRestClient: HTTP client with session handling and error checks.
    Session: Logon token handle returned by ``SapBoRestClient.log_on``.
    SessionState: NONE or ACTIVE.
    AuthType: Supported authentication types.
    types: Module containing Pydantic models for API envelopes.
    DEFAULT_TIMEOUT: Default HTTP request timeout.
"""

from . import types
from .client import API_ROOT, DEFAULT_TIMEOUT, SapBoRestClient
from .session import (
    DEFAULT_AUTH_TYPE,
    TOKEN_HEADER,
    AuthType,
    Session,
    SessionState,
    logon_body,
)

__all__ = [
    "API_ROOT",
    "DEFAULT_AUTH_TYPE",
    "DEFAULT_TIMEOUT",
    "TOKEN_HEADER",
    "AuthType",
    "SapBoRestClient",
    "Session",
    "SessionState",
    "logon_body",
    "types",
]
